"""Candidate cache: remembers the ranking context of each candidate for later expansion.

A miss is a normal ``None`` result; the detailer degrades to a generic
proposal in that case.
"""

import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import orjson

from schemas.proposal import ScoredProposal
from schemas.requirement import RequirementProfile

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_ENTRIES = 512


@dataclass(frozen=True)
class RankingContext:
    """A candidate together with the profile it was ranked against."""

    candidate: ScoredProposal
    profile: RequirementProfile

    def copy(self) -> "RankingContext":
        return RankingContext(
            candidate=self.candidate.model_copy(deep=True),
            profile=self.profile.model_copy(deep=True),
        )

    def to_json(self) -> bytes:
        return orjson.dumps({
            "candidate": self.candidate.model_dump(mode="json"),
            "profile": self.profile.model_dump(mode="json"),
        })

    @classmethod
    def from_json(cls, raw) -> "RankingContext":
        data = orjson.loads(raw)
        return cls(
            candidate=ScoredProposal.model_validate(data["candidate"]),
            profile=RequirementProfile.model_validate(data["profile"]),
        )


class CandidateCache(ABC):
    @abstractmethod
    def get(self, proposal_id: str) -> Optional[RankingContext]:
        ...

    @abstractmethod
    def put(self, proposal_id: str, context: RankingContext) -> None:
        ...

    @abstractmethod
    def delete(self, proposal_id: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryCandidateCache(CandidateCache):
    """Process-local cache with TTL expiry and LRU eviction. Thread-safe."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, RankingContext]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, proposal_id: str) -> Optional[RankingContext]:
        with self._lock:
            entry = self._entries.get(proposal_id)
            if entry is None:
                return None
            stored_at, context = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[proposal_id]
                return None
            self._entries.move_to_end(proposal_id)
            return context.copy()

    def put(self, proposal_id: str, context: RankingContext) -> None:
        with self._lock:
            self._entries[proposal_id] = (self._clock(), context.copy())
            self._entries.move_to_end(proposal_id)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted candidate %s from cache", evicted)

    def delete(self, proposal_id: str) -> None:
        with self._lock:
            self._entries.pop(proposal_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class SQLiteCandidateCache(CandidateCache):
    """Cache persisted in SQLite so candidates survive a server restart."""

    def __init__(
        self,
        db_path: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS candidate_cache (
                    proposal_id TEXT PRIMARY KEY,
                    payload BLOB NOT NULL,
                    stored_at REAL NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, proposal_id: str) -> Optional[RankingContext]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT payload, stored_at FROM candidate_cache WHERE proposal_id = ?",
                (proposal_id,),
            ).fetchone()
            if row is None:
                return None
            payload, stored_at = row
            if self._clock() - stored_at > self.ttl_seconds:
                conn.execute("DELETE FROM candidate_cache WHERE proposal_id = ?", (proposal_id,))
                conn.commit()
                return None
        finally:
            conn.close()
        return RankingContext.from_json(payload)

    def put(self, proposal_id: str, context: RankingContext) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO candidate_cache (proposal_id, payload, stored_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(proposal_id) DO UPDATE SET
                       payload = excluded.payload, stored_at = excluded.stored_at""",
                (proposal_id, context.to_json(), self._clock()),
            )
            conn.execute(
                "DELETE FROM candidate_cache WHERE stored_at < ?",
                (self._clock() - self.ttl_seconds,),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, proposal_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM candidate_cache WHERE proposal_id = ?", (proposal_id,))
            conn.commit()
        finally:
            conn.close()

    def clear(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM candidate_cache")
            conn.commit()
        finally:
            conn.close()


def build_cache(backend: str, db_path: str = "", ttl_seconds: float = DEFAULT_TTL_SECONDS,
                max_entries: int = DEFAULT_MAX_ENTRIES) -> CandidateCache:
    if backend == "sqlite":
        return SQLiteCandidateCache(db_path, ttl_seconds=ttl_seconds)
    return InMemoryCandidateCache(ttl_seconds=ttl_seconds, max_entries=max_entries)

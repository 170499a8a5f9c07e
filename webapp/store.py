"""SQLite-backed persistence for users, saved proposals and the material catalog.

Uses WAL mode so report queries can run while a proposal is being saved.
Every proposal and material row is scoped to its owner.
"""

import hashlib
import logging
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import orjson

from schemas.material import Material
from schemas.proposal import DraftType, FullProposal, ProposalStatus, ProposalSummary
from schemas.requirement import RequirementProfile
from webapp.proposal.errors import InputValidationError, ProposalNotFound

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "proposals.db"
_SCRYPT_PARAMS = {"n": 2 ** 14, "r": 8, "p": 1, "dklen": 32}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def hash_password(password: str) -> str:
    """scrypt hash in the form ``scrypt$<salt hex>$<key hex>``."""
    salt = secrets.token_bytes(16)
    key = hashlib.scrypt(password.encode("utf-8"), salt=salt, **_SCRYPT_PARAMS)
    return f"scrypt${salt.hex()}${key.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, salt_hex, key_hex = stored.split("$")
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    key = hashlib.scrypt(password.encode("utf-8"), salt=salt, **_SCRYPT_PARAMS)
    return secrets.compare_digest(key.hex(), key_hex)


def _user_row(row: sqlite3.Row) -> dict:
    user = dict(row)
    user.pop("password_hash", None)
    return user


def _ensure_user_columns(conn: sqlite3.Connection):
    """Add the password column to databases created before it existed."""
    cols = {r["name"] for r in conn.execute("PRAGMA table_info(users)")}
    if "password_hash" not in cols:
        conn.execute("ALTER TABLE users ADD COLUMN password_hash TEXT")


class ProposalStore:
    """Manages users, proposals and materials via SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    username TEXT PRIMARY KEY,
                    display_name TEXT,
                    token TEXT UNIQUE,
                    password_hash TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS proposals (
                    proposal_id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL REFERENCES users(username),
                    client_name TEXT,
                    website_url TEXT,
                    status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'completed')),
                    profile TEXT,
                    research_data TEXT,
                    proposal_content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS materials (
                    material_id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL REFERENCES users(username),
                    trade_name TEXT,
                    inci_name TEXT,
                    category TEXT,
                    cost_level TEXT,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_proposals_owner
                    ON proposals(owner, updated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_materials_owner
                    ON materials(owner, created_at DESC);
            """)
            _ensure_user_columns(conn)
            conn.commit()
            logger.info("Proposal database initialized at %s", self.db_path)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def authenticate_user(self, username: str, password: str) -> Optional[dict]:
        """Return the user row for a correct password, or None on a mismatch.

        The first login for an unknown username registers it with that
        password and issues its bearer token. Later logins must present the
        same password; the stored token is never returned otherwise.
        """
        username = (username or "").strip()
        if not username:
            raise InputValidationError("username is required", "ユーザー名を入力してください。")
        if not password:
            raise InputValidationError("password is required", "パスワードを入力してください。")
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE username = ?", (username,)
            ).fetchone()
            if row is not None:
                if not row["password_hash"] or not verify_password(password, row["password_hash"]):
                    logger.warning("Rejected login for %s", username)
                    return None
                if row["token"]:
                    return _user_row(row)
                conn.execute(
                    "UPDATE users SET token = ? WHERE username = ?",
                    (secrets.token_urlsafe(32), username),
                )
            else:
                conn.execute(
                    "INSERT INTO users (username, display_name, token, password_hash) VALUES (?, ?, ?, ?)",
                    (username, username, secrets.token_urlsafe(32), hash_password(password)),
                )
                logger.info("Registered user %s", username)
            conn.commit()
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
            return _user_row(row)
        finally:
            conn.close()

    def user_for_token(self, token: str) -> Optional[dict]:
        if not token:
            return None
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users WHERE token = ?", (token,)).fetchone()
            return _user_row(row) if row else None
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def save_proposal(
        self,
        owner: str,
        proposal: FullProposal,
        client_name: str = "",
        website_url: str = "",
        profile: Optional[RequirementProfile] = None,
        status: ProposalStatus = ProposalStatus.DRAFT,
    ) -> str:
        """Insert or update a proposal; returns its id."""
        research = proposal.jp.client_research or (profile.client_research if profile else None)
        if not client_name and research is not None:
            client_name = research.company_name
        if not website_url and research is not None:
            website_url = research.website_url

        content = orjson.dumps(proposal.model_dump(mode="json")).decode()
        profile_json = orjson.dumps(profile.model_dump(mode="json")).decode() if profile else None
        research_json = orjson.dumps(research.model_dump(mode="json")).decode() if research else None
        now = _now()

        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT owner FROM proposals WHERE proposal_id = ?", (proposal.id,)
            ).fetchone()
            if existing and existing["owner"] != owner:
                raise ProposalNotFound(proposal.id)
            if existing:
                conn.execute(
                    """UPDATE proposals
                       SET client_name = ?, website_url = ?, status = ?,
                           profile = COALESCE(?, profile), research_data = COALESCE(?, research_data),
                           proposal_content = ?, updated_at = ?
                       WHERE proposal_id = ? AND owner = ?""",
                    (client_name, website_url, ProposalStatus(status).value, profile_json,
                     research_json, content, now, proposal.id, owner),
                )
            else:
                conn.execute(
                    """INSERT INTO proposals
                       (proposal_id, owner, client_name, website_url, status, profile,
                        research_data, proposal_content, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (proposal.id, owner, client_name, website_url, ProposalStatus(status).value,
                     profile_json, research_json, content, now, now),
                )
            conn.commit()
            logger.info("Saved proposal %s for %s", proposal.id, owner)
            return proposal.id
        finally:
            conn.close()

    def _get_row(self, conn: sqlite3.Connection, owner: str, proposal_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM proposals WHERE proposal_id = ? AND owner = ?",
            (proposal_id, owner),
        ).fetchone()
        if row is None:
            raise ProposalNotFound(proposal_id)
        return row

    def load_proposal(self, owner: str, proposal_id: str) -> FullProposal:
        conn = self._get_conn()
        try:
            row = self._get_row(conn, owner, proposal_id)
        finally:
            conn.close()
        return FullProposal.model_validate(orjson.loads(row["proposal_content"]))

    def load_profile(self, owner: str, proposal_id: str) -> Optional[RequirementProfile]:
        conn = self._get_conn()
        try:
            row = self._get_row(conn, owner, proposal_id)
        finally:
            conn.close()
        if not row["profile"]:
            return None
        return RequirementProfile.model_validate(orjson.loads(row["profile"]))

    def list_proposals(self, owner: str, status: Optional[ProposalStatus] = None, limit: int = 100) -> list[ProposalSummary]:
        query = """SELECT proposal_id, client_name, website_url, status, created_at, updated_at
                   FROM proposals WHERE owner = ?"""
        params: list = [owner]
        if status is not None:
            query += " AND status = ?"
            params.append(ProposalStatus(status).value)
        query += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)

        conn = self._get_conn()
        try:
            rows = conn.execute(query, params).fetchall()
            return [
                ProposalSummary(
                    id=r["proposal_id"],
                    client_name=r["client_name"] or "",
                    website_url=r["website_url"] or "",
                    status=r["status"],
                    created_at=r["created_at"],
                    updated_at=r["updated_at"],
                )
                for r in rows
            ]
        finally:
            conn.close()

    def delete_proposal(self, owner: str, proposal_id: str) -> bool:
        """Delete a proposal. Returns True if deleted."""
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM proposals WHERE proposal_id = ? AND owner = ?",
                (proposal_id, owner),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def set_status(self, owner: str, proposal_id: str, status: ProposalStatus):
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "UPDATE proposals SET status = ?, updated_at = ? WHERE proposal_id = ? AND owner = ?",
                (ProposalStatus(status).value, _now(), proposal_id, owner),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise ProposalNotFound(proposal_id)
        finally:
            conn.close()

    def update_email_draft(
        self,
        owner: str,
        proposal_id: str,
        draft_type: DraftType,
        content: str,
        language: str = "jp",
    ) -> FullProposal:
        """Replace one email draft of a saved proposal and return the updated proposal."""
        if language not in ("jp", "en"):
            raise InputValidationError(f"unknown language: {language}")
        draft_type = DraftType(draft_type)

        conn = self._get_conn()
        try:
            row = self._get_row(conn, owner, proposal_id)
            proposal = FullProposal.model_validate(orjson.loads(row["proposal_content"]))
            variant = getattr(proposal, language)
            setattr(variant.email_drafts, draft_type.value, content)
            if draft_type == DraftType.STANDARD:
                variant.email_draft = content
            conn.execute(
                "UPDATE proposals SET proposal_content = ?, updated_at = ? WHERE proposal_id = ? AND owner = ?",
                (orjson.dumps(proposal.model_dump(mode="json")).decode(), _now(), proposal_id, owner),
            )
            conn.commit()
            logger.info("Updated %s %s draft of %s", language, draft_type.value, proposal_id)
            return proposal
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------

    def add_material(self, owner: str, material: Material) -> str:
        material_id = material.id or f"mat-{uuid.uuid4().hex[:12]}"
        stored = material.model_copy(update={"id": material_id})
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO materials
                   (material_id, owner, trade_name, inci_name, category, cost_level, data, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (material_id, owner, stored.trade_name, stored.inci_name, stored.category,
                 stored.cost_level.value, orjson.dumps(stored.model_dump(mode="json")).decode(), _now()),
            )
            conn.commit()
            return material_id
        finally:
            conn.close()

    def list_materials(self, owner: str) -> list[Material]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT data FROM materials WHERE owner = ? ORDER BY created_at DESC",
                (owner,),
            ).fetchall()
            return [Material.model_validate(orjson.loads(r["data"])) for r in rows]
        finally:
            conn.close()

    def delete_material(self, owner: str, material_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM materials WHERE material_id = ? AND owner = ?",
                (material_id, owner),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def stats(self, owner: str) -> dict:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT
                    COUNT(*) as total_proposals,
                    COALESCE(SUM(CASE WHEN status = 'draft' THEN 1 ELSE 0 END), 0) as draft_proposals,
                    COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) as completed_proposals
                   FROM proposals WHERE owner = ?""",
                (owner,),
            ).fetchone()
            total_materials = conn.execute(
                "SELECT COUNT(*) FROM materials WHERE owner = ?", (owner,)
            ).fetchone()[0]
            return {**dict(row), "total_materials": total_materials}
        finally:
            conn.close()

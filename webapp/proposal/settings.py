"""Runtime configuration for the proposal pipeline, read from the environment."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).parent.parent.parent

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-6",
    "openai": "gpt-4o",
}
DEFAULT_FAST_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
}

EN_MODES = ("generate", "copy")
CACHE_BACKENDS = ("memory", "sqlite")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass
class PipelineSettings:
    llm_provider: str = "anthropic"
    llm_model: Optional[str] = None
    llm_fast_model: Optional[str] = None
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    db_path: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "proposals.db")
    cache_backend: str = "memory"
    cache_ttl_seconds: int = 3600
    cache_max_entries: int = 512
    en_mode: str = "generate"

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        provider = os.getenv("LLM_PROVIDER", "anthropic").strip().lower() or "anthropic"
        db_path = os.getenv("PROPOSAL_DB_PATH", "")
        en_mode = os.getenv("PROPOSAL_EN_MODE", "generate").strip().lower()
        backend = os.getenv("CANDIDATE_CACHE_BACKEND", "memory").strip().lower()
        return cls(
            llm_provider=provider,
            llm_model=os.getenv("LLM_MODEL") or None,
            llm_fast_model=os.getenv("LLM_FAST_MODEL") or None,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            db_path=Path(db_path) if db_path else PROJECT_ROOT / "data" / "proposals.db",
            cache_backend=backend if backend in CACHE_BACKENDS else "memory",
            cache_ttl_seconds=_env_int("CANDIDATE_CACHE_TTL_SECONDS", 3600),
            cache_max_entries=_env_int("CANDIDATE_CACHE_MAX_ENTRIES", 512),
            en_mode=en_mode if en_mode in EN_MODES else "generate",
        )

    @property
    def model(self) -> str:
        return self.llm_model or DEFAULT_MODELS.get(self.llm_provider, DEFAULT_MODELS["anthropic"])

    @property
    def fast_model(self) -> str:
        return self.llm_fast_model or DEFAULT_FAST_MODELS.get(
            self.llm_provider, DEFAULT_FAST_MODELS["anthropic"]
        )

    @property
    def api_key(self) -> Optional[str]:
        if self.llm_provider == "openai":
            return self.openai_api_key or None
        return self.anthropic_api_key or None

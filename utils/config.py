"""Application configuration read from environment variables.

Values are read once at startup (after `load_dotenv()` in `main.py`).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if value is None or not value.strip():
        raise RuntimeError(f"{name} environment variable is not set")
    return value.strip()


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class AppConfig:
    openai_api_key: str
    database_dir: Path
    object_store_dir: Path
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 30.0
    public_base_url: str = "http://localhost:8000/media"
    readback_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Build the config from `env` (defaults to `os.environ`).

        Raises:
            RuntimeError: If a required variable is missing or a number is invalid.
        """
        env = os.environ if env is None else env
        database_dir = Path(_require(env, "DATABASE_DIR")).expanduser()
        store_dir = env.get("OBJECT_STORE_DIR") or str(database_dir / "objects")

        return cls(
            openai_api_key=_require(env, "OPENAI_API_KEY"),
            database_dir=database_dir,
            object_store_dir=Path(store_dir).expanduser(),
            openai_model=env.get("OPENAI_MODEL") or cls.openai_model,
            openai_timeout=_float(env, "OPENAI_TIMEOUT_SECONDS", cls.openai_timeout),
            public_base_url=(env.get("PUBLIC_BASE_URL") or cls.public_base_url).rstrip("/"),
            readback_timeout=_float(env, "READBACK_TIMEOUT_SECONDS", cls.readback_timeout),
            log_level=(env.get("LOG_LEVEL") or cls.log_level).upper(),
        )

"""Engine configuration with environment overrides.

Environment Variables:
    FAMILY_GRAPH_DB_PATH: SQLite record store path (default ./data/family_graph.db)
    FAMILY_GRAPH_MAX_ATTEMPTS: Attempts per operation on write conflicts (default 5)
    FAMILY_GRAPH_RETRY_WAIT_INITIAL: First backoff in seconds (default 0.01)
    FAMILY_GRAPH_RETRY_WAIT_MAX: Backoff ceiling in seconds (default 0.5)
    FAMILY_GRAPH_OPERATION_TIMEOUT: Time budget per operation in seconds (default 10)
    FAMILY_GRAPH_TRAVERSAL_LIMIT: Max members visited by the ancestry search (default 10000)
    FAMILY_GRAPH_INVITATION_TTL_DAYS: Invitation lifetime in days (default 7)
    FAMILY_GRAPH_LOG_LEVEL: structlog level (default INFO)

Example:
    >>> from family_graph.config import load_config
    >>> config = load_config()
    >>> config.max_attempts
    5
"""
from __future__ import annotations

import os
from dataclasses import dataclass


def _f(name: str, default: float) -> float:
    """Parse float from environment variable with fallback."""
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _i(name: str, default: int) -> int:
    """Parse int from environment variable with fallback."""
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class EngineConfig:
    """Settings shared by every engine component."""

    db_path: str = "./data/family_graph.db"

    # Optimistic concurrency retries
    max_attempts: int = 5
    retry_wait_initial: float = 0.01
    retry_wait_max: float = 0.5
    operation_timeout: float = 10.0

    # Validation bounds
    traversal_limit: int = 10_000

    invitation_ttl_days: int = 7
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> EngineConfig:
        return cls(
            db_path=os.getenv("FAMILY_GRAPH_DB_PATH", cls.db_path),
            max_attempts=max(1, _i("FAMILY_GRAPH_MAX_ATTEMPTS", cls.max_attempts)),
            retry_wait_initial=_f("FAMILY_GRAPH_RETRY_WAIT_INITIAL", cls.retry_wait_initial),
            retry_wait_max=_f("FAMILY_GRAPH_RETRY_WAIT_MAX", cls.retry_wait_max),
            operation_timeout=_f("FAMILY_GRAPH_OPERATION_TIMEOUT", cls.operation_timeout),
            traversal_limit=_i("FAMILY_GRAPH_TRAVERSAL_LIMIT", cls.traversal_limit),
            invitation_ttl_days=_i("FAMILY_GRAPH_INVITATION_TTL_DAYS", cls.invitation_ttl_days),
            log_level=os.getenv("FAMILY_GRAPH_LOG_LEVEL", cls.log_level).upper(),
        )


def load_config() -> EngineConfig:
    """Load .env (without overriding the process environment), then read settings."""
    from dotenv import load_dotenv

    load_dotenv()
    return EngineConfig.from_env()

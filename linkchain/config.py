"""Centralised settings for the linkchain service.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

Provider domain lists are configuration data: each one is a comma-separated
environment variable whose default mirrors the providers seen in production.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_list(name: str, default: str) -> list[str]:
    """Split a comma-separated environment variable into a clean list."""
    raw = os.environ.get(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("LINKCHAIN_WORKSPACE", Path.home() / ".linkchain_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "linkchain.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    db_busy_timeout: float = field(
        default_factory=lambda: float(os.environ.get("DB_BUSY_TIMEOUT", "5.0"))
    )

    # ------------------------------------------------------------------
    # Dispatcher budgets (seconds)
    # ------------------------------------------------------------------
    link_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LINK_TIMEOUT", "25.0"))
    )
    overall_timeout: float = field(
        default_factory=lambda: float(os.environ.get("OVERALL_TIMEOUT", "50.0"))
    )

    # ------------------------------------------------------------------
    # Step solvers (remote helper service)
    # ------------------------------------------------------------------
    solver_api_url: str = field(
        default_factory=lambda: os.environ.get("SOLVER_API_URL", "http://localhost:10000")
    )
    timer_api_url: str = field(
        default_factory=lambda: os.environ.get(
            "TIMER_API_URL", "http://localhost:10000/solve"
        )
    )
    solver_request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SOLVER_REQUEST_TIMEOUT", "20.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get("SOLVER_USER_AGENT", "linkchain/1.0")
    )

    # ------------------------------------------------------------------
    # Provider domains
    # ------------------------------------------------------------------
    protected_domains: list[str] = field(
        default_factory=lambda: _env_list(
            "PROTECTED_DOMAINS", "gadgetsweb,review-tech,ngwin,cryptoinsights"
        )
    )
    native_gate_domains: list[str] = field(
        default_factory=lambda: _env_list("NATIVE_GATE_DOMAINS", "gadgetsweb")
    )
    timer_gate_domains: list[str] = field(
        default_factory=lambda: _env_list(
            "TIMER_GATE_DOMAINS", "review-tech,ngwin,cryptoinsights"
        )
    )
    direct_terminal_domains: list[str] = field(
        default_factory=lambda: _env_list("DIRECT_TERMINAL_DOMAINS", "hubcdn.fans")
    )
    unlock_tier1_domains: list[str] = field(
        default_factory=lambda: _env_list("UNLOCK_TIER1_DOMAINS", "hblinks")
    )
    unlock_tier2_domains: list[str] = field(
        default_factory=lambda: _env_list("UNLOCK_TIER2_DOMAINS", "hubdrive")
    )
    cloud_terminal_domains: list[str] = field(
        default_factory=lambda: _env_list("CLOUD_TERMINAL_DOMAINS", "hubcloud,hubcdn")
    )

    # ------------------------------------------------------------------
    # Boundary / autopilot glue
    # ------------------------------------------------------------------
    cron_secret: str = field(
        default_factory=lambda: os.environ.get("CRON_SECRET", "")
    )
    extract_api_url: str = field(
        default_factory=lambda: os.environ.get(
            "EXTRACT_API_URL", "http://localhost:3000/api/tasks"
        )
    )
    telegram_bot_token: str = field(
        default_factory=lambda: os.environ.get("TELEGRAM_BOT_TOKEN", "")
    )
    telegram_chat_id: str = field(
        default_factory=lambda: os.environ.get("TELEGRAM_CHAT_ID", "")
    )
    recovery_grace_seconds: int = field(
        default_factory=lambda: int(os.environ.get("RECOVERY_GRACE_SECONDS", "600"))
    )
    queue_max_retries: int = field(
        default_factory=lambda: int(os.environ.get("QUEUE_MAX_RETRIES", "3"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the root logger.

    Safe to call more than once; ``logging.basicConfig`` is a no-op when the
    root logger already has handlers.
    """
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# Module-level singleton; import this everywhere:
#   from linkchain.config import settings
settings = Settings()

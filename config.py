"""Runtime settings and logging setup.

Values come from environment variables, optionally seeded by a `.env` file
next to this module (loaded on import, never overriding the real
environment). Command-line options override them.
"""
import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(_env_path, override=False)

TRUTHY = {"1", "true", "yes", "on"}


class Pager(str, Enum):
    LESS = "less"
    MORE = "more"
    BAT = "bat"
    NEOVIM = "neovim"

    def command(self):
        if self is Pager.LESS:
            return ["less", "-R"]
        if self is Pager.MORE:
            return ["more"]
        if self is Pager.BAT:
            return ["bat", "--paging=always", "--decorations=never"]
        return ["nvim", "+Man!"]


def _optional_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    return float(value) if value else None


@dataclass
class Settings:
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("GEMINI_MAX_REDIRECTS", "5"))
    )
    pager: Pager = field(
        default_factory=lambda: Pager(os.environ.get("GEMINI_PAGER", "less").lower())
    )
    opener: str = field(default_factory=lambda: os.environ.get("GEMINI_OPENER", "xdg-open"))
    # no timeout unless configured
    timeout: Optional[float] = field(default_factory=lambda: _optional_float("GEMINI_TIMEOUT"))
    verify_tls: bool = field(
        default_factory=lambda: os.environ.get("GEMINI_VERIFY_TLS", "").lower() in TRUTHY
    )
    log_level: str = field(default_factory=lambda: os.environ.get("GEMINI_LOG_LEVEL", "warning"))
    editor: Optional[str] = field(default_factory=lambda: os.environ.get("EDITOR"))


def setup_logging(level: str = "warning") -> None:
    """Route structlog through stdlib logging, rendering to stderr."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


settings = Settings()

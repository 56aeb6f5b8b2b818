"""
rivalscope/utils/logger.py → logger dengan 2 mode:

stdout (default): hanya ke console, rotasi/agregasi diserahkan ke Docker/systemd.

file: tulis ke logs/<module>.log, rotasi harian, retensi (default 30 hari).

Semua konfigurasi via ENV prefix LOG_ (atau .env), dan bisa di-overlay oleh
Quart app.config bila dipanggil di dalam app context.
"""

# rivalscope/utils/logger.py
from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from quart import current_app, has_app_context


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class LogSettings(BaseSettings):
    """
    Konfigurasi via ENV (prefix LOG_) / .env / overlay dari Quart app.config

      - LOG_MODE=stdout|file
      - LOG_LEVEL=INFO|DEBUG|WARNING|ERROR
      - LOG_FORMAT="%(asctime)s %(levelname)s %(name)s: %(message)s"
      - LOG_DATEFMT="%Y-%m-%d %H:%M:%S"
      - LOG_RETENTION=30
      - LOG_ROOT_DIR="/path/proyek" (opsional; default akar proyek)
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
    )

    mode: str = "stdout"
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"
    retention: int = 30
    root_dir: Optional[Path] = None


_OVERLAY_KEYS = ("LOG_MODE", "LOG_LEVEL", "LOG_FORMAT", "LOG_DATEFMT", "LOG_RETENTION")


def _settings() -> LogSettings:
    """ENV/.env, lalu overlay app.config (prioritas: app.config > ENV)."""
    s = LogSettings()
    if not has_app_context():
        return s

    cfg = current_app.config
    overlay = {
        key[4:].lower(): cfg[key] for key in _OVERLAY_KEYS if key in cfg
    }
    if not overlay:
        return s
    return s.model_copy(update=overlay)


def _to_level(level: str) -> int:
    return getattr(logging, str(level).upper(), logging.INFO)


_init_lock = threading.Lock()
_inited_loggers: set[str] = set()


def get_logger(name: str) -> logging.Logger:
    """
    Logger per-modul dengan perilaku:
      - stdout: satu StreamHandler ke sys.stdout
      - file: logs/<last-segment>.log, rotasi tengah malam + retensi
      - Idempotent & thread-safe (hindari duplikasi handler)
    """
    s = _settings()

    logger = logging.getLogger(name)
    logger.setLevel(_to_level(s.level))
    logger.propagate = False

    # Fast path
    if name in _inited_loggers and logger.handlers:
        return logger

    with _init_lock:
        if name in _inited_loggers and logger.handlers:
            return logger

        formatter = logging.Formatter(fmt=s.format, datefmt=s.datefmt)

        if (s.mode or "stdout").lower().strip() == "file":
            last_segment = (name.rsplit(".", 1)[-1] or "app").replace(":", "_")
            log_dir = (s.root_dir or PROJECT_ROOT) / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = TimedRotatingFileHandler(
                filename=str(log_dir / f"{last_segment}.log"),
                when="midnight",
                backupCount=int(s.retention),
                encoding="utf-8",
            )
        else:
            handler = logging.StreamHandler(sys.stdout)

        handler.setLevel(_to_level(s.level))
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        _inited_loggers.add(name)

    return logger

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .settings import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_MARKER = "_rdpilot_handler"


def configure_logging(level: str | None = None) -> None:
    """Install console and rotating-file handlers on the root logger.

    Safe to call more than once; handlers are only added the first time.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if any(getattr(h, _MARKER, False) for h in root.handlers):
        return

    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    setattr(console, _MARKER, True)
    root.addHandler(console)

    if not settings.log_to_file:
        return

    try:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        logging.getLogger(__name__).warning(
            "File logging disabled, cannot open %s: %s", settings.log_path, exc
        )
        return

    file_handler.setFormatter(formatter)
    setattr(file_handler, _MARKER, True)
    root.addHandler(file_handler)

from __future__ import annotations

import logging
import sys

from app.config import Settings

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def ensure_supported_python() -> None:
    if sys.version_info < (3, 12):
        version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
        raise RuntimeError(f'Python 3.12+ is required. Current: {version}')


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
    # httpx logs every request at INFO; keep that out of application logs.
    logging.getLogger('httpx').setLevel(max(level, logging.WARNING))

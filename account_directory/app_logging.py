"""JSON log output for the maintenance tooling."""

from typing import IO, Optional
import logging

from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(level: str = 'INFO',
                 stream: Optional[IO[str]] = None) -> logging.Handler:
    """Send records from every logger to ``stream`` as one JSON object per line."""
    handler = logging.StreamHandler(stream)
    formatter = jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    )
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level.upper())
    return handler

import sys
import uuid

from loguru import logger


def generate_request_id() -> str:
    """Short unique id used to correlate log lines of one request."""
    return uuid.uuid4().hex[:12]


def configure_logging(level: str = "INFO") -> None:
    """
    Route loguru output to stderr at ``level``.

    Audit events (records bound with ``audit=True``) are kept on the same
    sink but carry their structured fields in ``record["extra"]``.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
        ),
    )

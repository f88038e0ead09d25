import logging
import math
import os
import re
import uuid
from datetime import datetime, timezone

import structlog


def configure_logging(debug: bool = False) -> None:
    """Configure structlog for the API, scripts and scans."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a unique record id such as ``asset_3f2c...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def new_asset_id() -> str:
    return new_id("asset")


def new_alert_id() -> str:
    return new_id("alert")


def new_session_id() -> str:
    return new_id("scan")


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe storage."""
    if not filename:
        return "unnamed_file"

    # Keep only alphanumeric, dots, dashes, underscores
    sanitized = re.sub(r'[^\w\-_\.]', '_', filename)

    # Remove multiple consecutive underscores
    sanitized = re.sub(r'_{2,}', '_', sanitized)

    # Ensure it doesn't start with a dot (hidden file)
    if sanitized.startswith('.'):
        sanitized = 'file_' + sanitized

    if len(sanitized) > 255:
        name, ext = os.path.splitext(sanitized)
        sanitized = name[:255-len(ext)] + ext

    return sanitized


def is_image_file(filename: str) -> bool:
    """Check if filename has a supported image extension."""
    if not filename:
        return False
    image_extensions = {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tiff'}
    return any(filename.lower().endswith(ext) for ext in image_extensions)


def thumbnail_reference(asset_id: str, filename: str) -> str:
    """Build the storage reference under which an asset thumbnail is kept."""
    return f"thumbnails/{asset_id}_{sanitize_filename(filename)}"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (12.5 -> 13)."""
    return int(math.floor(value + 0.5))

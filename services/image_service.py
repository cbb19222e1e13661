"""Image decoding helpers for uploaded attachments"""
from io import BytesIO
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from config import MAX_UPLOAD_BYTES
from services.errors import ValidationError

logger = logging.getLogger(__name__)


def normalize_image_bytes(data: bytes, field_name: str, max_bytes: Optional[int] = None) -> bytes:
    """Decode an uploaded image and re-encode it as RGB PNG"""
    if max_bytes is None:
        max_bytes = MAX_UPLOAD_BYTES
    if len(data) > max_bytes:
        raise ValidationError(f"{field_name} exceeds maximum upload size of {max_bytes} bytes")
    try:
        img = Image.open(BytesIO(data)).convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not decode {field_name}: {str(e)}")
        raise ValidationError(f"{field_name} is not a valid image") from e

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    png_bytes = buffer.getvalue()
    logger.info(f"Normalized {field_name}: {img.width}x{img.height}, {len(png_bytes)} bytes")
    return png_bytes

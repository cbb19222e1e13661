"""Cloudinary storage for uploaded request images"""
from io import BytesIO
import logging
import uuid

import cloudinary
import cloudinary.uploader
from anyio import to_thread

from config import (
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_FOLDER,
)

logger = logging.getLogger(__name__)

# Configure Cloudinary
cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET
)


def _upload_sync(png_bytes: bytes, public_id: str) -> dict:
    buffer = BytesIO(png_bytes)
    return cloudinary.uploader.upload(
        buffer,
        folder=CLOUDINARY_FOLDER,
        public_id=public_id,
        resource_type="image",
        format="png"
    )


async def upload_to_cloudinary(png_bytes: bytes, filename: str) -> str:
    """Upload PNG bytes to Cloudinary and return the secure URL"""
    stem = filename.rsplit(".", 1)[0] or "upload"
    public_id = f"{stem}_{uuid.uuid4().hex[:8]}"

    logger.info(f"Uploading to Cloudinary: public_id={public_id}")
    response = await to_thread.run_sync(_upload_sync, png_bytes, public_id)

    secure_url = response["secure_url"]
    logger.info(f"Uploaded to Cloudinary: {secure_url}")
    return secure_url

"""Application configuration loaded from environment variables"""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# fal.ai credentials and models
FAL_KEY = os.getenv("FAL_KEY", os.getenv("FAL_API_KEY", "")).strip()
FAL_TRYON_MODEL = os.getenv("FAL_TRYON_MODEL", "fal-ai/leffa/virtual-tryon")
FAL_GENERATION_MODEL = os.getenv("FAL_GENERATION_MODEL", "fal-ai/flux/schnell")
GENERATION_IMAGE_SIZE = os.getenv("GENERATION_IMAGE_SIZE", "square_hd")

# Pricing (USDC)
BASE_COST = Decimal(os.getenv("BASE_COST", "0.05"))
GENERATION_COST = Decimal(os.getenv("GENERATION_COST", "0.03"))
PER_USER_LIMIT = Decimal(os.getenv("PER_USER_LIMIT", "0.50"))

# Optional Cloudinary storage for uploaded binaries
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "virtual-tryon/uploads")

# Runtime
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()
API_KEY = os.getenv("API_KEY")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()


def is_production() -> bool:
    return ENVIRONMENT == "production"


def cloudinary_configured() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)

"""fal.ai client for uploads, garment generation and try-on composition"""
import abc
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import fal_client
import httpx

from config import FAL_GENERATION_MODEL, FAL_KEY, FAL_TRYON_MODEL, GENERATION_IMAGE_SIZE
from services.errors import ExternalServiceError

logger = logging.getLogger(__name__)

Uploader = Callable[[bytes, str], Awaitable[str]]


@dataclass(frozen=True)
class GeneratedImage:
    url: str


@dataclass(frozen=True)
class ExternalCallResult:
    """Composition output, passed through to the caller unmodified"""
    image_url: str
    width: Optional[int]
    height: Optional[int]
    seed: Optional[int]
    nsfw_flag: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageUrl": self.image_url,
            "width": self.width,
            "height": self.height,
            "seed": self.seed,
            "hasNsfwConcepts": self.nsfw_flag,
        }


class TryOnClient(abc.ABC):
    """External capabilities the try-on pipeline depends on"""

    @abc.abstractmethod
    async def upload_binary(self, data: bytes, filename: str) -> str:
        ...

    @abc.abstractmethod
    async def generate_image(self, prompt: str) -> GeneratedImage:
        ...

    @abc.abstractmethod
    async def compose_tryon(self, human_url: str, garment_url: str, garment_type: str) -> ExternalCallResult:
        ...


def deep_find_url(obj: Any) -> Optional[str]:
    if isinstance(obj, dict):
        for k, v in obj.items():
            if k in ("url", "image_url", "output_url") and isinstance(v, str) and v.startswith("http"):
                return v
            got = deep_find_url(v)
            if got:
                return got
    if isinstance(obj, list):
        for it in obj:
            got = deep_find_url(it)
            if got:
                return got
    return None


def _log_queue_update(update: Any) -> None:
    if isinstance(update, fal_client.InProgress) and update.logs:
        for entry in update.logs:
            logger.info(f"fal queue: {entry.get('message', entry)}")


class FalTryOnClient(TryOnClient):
    """TryOnClient backed by fal.ai queue endpoints"""

    def __init__(
        self,
        key: str = FAL_KEY,
        tryon_model: str = FAL_TRYON_MODEL,
        generation_model: str = FAL_GENERATION_MODEL,
        uploader: Optional[Uploader] = None,
    ):
        if not key:
            logger.warning("FAL_KEY not configured. fal.ai calls will fail.")
        self.client = fal_client.AsyncClient(key=key or None)
        self.tryon_model = tryon_model
        self.generation_model = generation_model
        self.uploader = uploader

    async def _call(self, step: str, coro: Awaitable[Any]) -> Any:
        try:
            return await coro
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from fal.ai during {step}: {e.response.status_code} - {e.response.text}")
            raise ExternalServiceError(
                f"{step} failed: provider returned {e.response.status_code}",
                step=step,
                detail={"status": e.response.status_code, "body": e.response.text},
            ) from e
        except Exception as e:
            logger.error(f"fal.ai {step} call failed: {type(e).__name__}: {str(e)}")
            raise ExternalServiceError(
                f"{step} failed: {str(e)}",
                step=step,
                detail={"type": type(e).__name__},
            ) from e

    async def upload_binary(self, data: bytes, filename: str) -> str:
        if self.uploader is not None:
            return await self._call("upload", self.uploader(data, filename))

        name = filename or f"upload_{uuid.uuid4().hex[:8]}.png"
        logger.info(f"Uploading {len(data)} bytes to fal storage as {name}")
        url = await self._call("upload", self.client.upload(data, "image/png", file_name=name))
        if not isinstance(url, str) or not url:
            raise ExternalServiceError(f"Unexpected upload response: {type(url).__name__}", step="upload")
        return url

    async def generate_image(self, prompt: str) -> GeneratedImage:
        logger.info(f"Calling fal.ai generation model: {self.generation_model}")
        result = await self._call("generate", self.client.subscribe(
            self.generation_model,
            arguments={
                "prompt": prompt,
                "image_size": GENERATION_IMAGE_SIZE,
                "num_images": 1,
            },
            with_logs=True,
            on_queue_update=_log_queue_update,
        ))

        url = None
        if isinstance(result, dict):
            images = result.get("images")
            if isinstance(images, list) and images and isinstance(images[0], dict):
                url = images[0].get("url")
        if not url:
            url = deep_find_url(result)
        if not url:
            raise ExternalServiceError("generate failed: provider returned no image url", step="generate")

        logger.info(f"Generated garment image: {url}")
        return GeneratedImage(url=url)

    async def compose_tryon(self, human_url: str, garment_url: str, garment_type: str) -> ExternalCallResult:
        logger.info(f"Calling fal.ai try-on model: {self.tryon_model} (garment_type={garment_type})")
        result = await self._call("compose", self.client.subscribe(
            self.tryon_model,
            arguments={
                "human_image_url": human_url,
                "garment_image_url": garment_url,
                "garment_type": garment_type,
            },
            with_logs=True,
            on_queue_update=_log_queue_update,
        ))

        image = result.get("image") if isinstance(result, dict) else None
        if not isinstance(image, dict) or not image.get("url"):
            raise ExternalServiceError("compose failed: provider returned no image", step="compose")

        return ExternalCallResult(
            image_url=image["url"],
            width=image.get("width"),
            height=image.get("height"),
            seed=result.get("seed"),
            nsfw_flag=result.get("has_nsfw_concepts"),
        )

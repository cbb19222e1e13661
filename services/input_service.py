"""Normalize both request encodings into one canonical try-on request

A request arrives either as JSON (every image referenced by URL) or as
multipart form data (images may be binary attachments). Both are captured as
a tagged input variant and resolved by `resolve_request`, which validates,
picks the winning source per image and computes the cost estimate before any
external call happens.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple, Union
import logging

from config import BASE_COST, GENERATION_COST
from schemas import DEFAULT_GARMENT_TYPE, GARMENT_TYPES
from services.errors import ValidationError
from services.image_service import normalize_image_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class JsonTryOnInput:
    human_image_url: Optional[str] = None
    garment_image_url: Optional[str] = None
    garment_description: Optional[str] = None
    garment_type: Optional[str] = None


@dataclass(frozen=True)
class MultipartTryOnInput:
    human_image: Optional[Attachment] = None
    human_image_url: Optional[str] = None
    garment_image: Optional[Attachment] = None
    garment_image_url: Optional[str] = None
    garment_description: Optional[str] = None
    garment_type: Optional[str] = None


TryOnInput = Union[JsonTryOnInput, MultipartTryOnInput]


@dataclass(frozen=True)
class ImageSource:
    """Either a remote URL or PNG bytes still to be uploaded"""
    url: Optional[str] = None
    data: Optional[bytes] = None
    filename: Optional[str] = None

    @property
    def is_binary(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class CostEstimate:
    base_cost: Decimal
    generation_cost: Decimal
    needs_generation: bool

    @property
    def total(self) -> Decimal:
        return self.base_cost + (self.generation_cost if self.needs_generation else Decimal("0"))


@dataclass(frozen=True)
class ResolvedTryOnRequest:
    human_image: ImageSource
    garment_image: Optional[ImageSource]
    garment_description: Optional[str]
    garment_type: str

    @property
    def needs_generation(self) -> bool:
        return self.garment_image is None and bool(self.garment_description)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _attachment(value: Optional[Attachment]) -> Optional[Attachment]:
    if value is None or not value.data:
        return None
    return value


def estimate_cost(needs_generation: bool) -> CostEstimate:
    return CostEstimate(
        base_cost=BASE_COST,
        generation_cost=GENERATION_COST,
        needs_generation=needs_generation,
    )


def _pick_image(attachment: Optional[Attachment], url: Optional[str]) -> Optional[Tuple[Optional[Attachment], Optional[str]]]:
    if attachment is not None:
        return attachment, None
    if url is not None:
        return None, url
    return None


def resolve_request(raw: TryOnInput) -> Tuple[ResolvedTryOnRequest, CostEstimate]:
    """Validate and normalize a try-on input, returning the request and its cost"""
    if isinstance(raw, MultipartTryOnInput):
        human = _pick_image(_attachment(raw.human_image), _clean(raw.human_image_url))
        garment = _pick_image(_attachment(raw.garment_image), _clean(raw.garment_image_url))
        encoding = "multipart"
    elif isinstance(raw, JsonTryOnInput):
        human = _pick_image(None, _clean(raw.human_image_url))
        garment = _pick_image(None, _clean(raw.garment_image_url))
        encoding = "json"
    else:
        raise ValidationError(f"Unsupported request input: {type(raw).__name__}")

    description = _clean(raw.garment_description)

    if human is None:
        raise ValidationError("missing human image")
    if garment is None and description is None:
        raise ValidationError("missing garment input")

    garment_type = _clean(raw.garment_type) or DEFAULT_GARMENT_TYPE
    if garment_type not in GARMENT_TYPES:
        raise ValidationError("invalid garment type")

    human_image = _to_source(human, "humanImage")
    garment_image = _to_source(garment, "garmentImage") if garment is not None else None

    request = ResolvedTryOnRequest(
        human_image=human_image,
        garment_image=garment_image,
        garment_description=description,
        garment_type=garment_type,
    )
    cost = estimate_cost(request.needs_generation)
    logger.info(
        f"Resolved {encoding} request: human={'binary' if human_image.is_binary else 'url'}, "
        f"garment={'none' if garment_image is None else ('binary' if garment_image.is_binary else 'url')}, "
        f"needs_generation={cost.needs_generation}, total={cost.total}"
    )
    return request, cost


def _to_source(picked: Tuple[Optional[Attachment], Optional[str]], field_name: str) -> ImageSource:
    attachment, url = picked
    if attachment is not None:
        return ImageSource(
            data=normalize_image_bytes(attachment.data, field_name),
            filename=attachment.filename or f"{field_name}.png",
        )
    return ImageSource(url=url)

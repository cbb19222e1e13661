from fastapi import FastAPI, HTTPException, Request, Depends, Security
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile
from typing import Any, Dict, Optional, Union
import json
import logging
import uvicorn

import config
from schemas import (
    BudgetListing,
    ErrorResponse,
    ResetResponse,
    ServiceStatus,
    TryOnJsonRequest,
    TryOnSuccessResponse,
)
from services.budget_service import BudgetLedger, BudgetSnapshot, InMemoryBudgetLedger
from services.errors import BudgetExceededError, ExternalServiceError, TryOnError, ValidationError
from services.fal_service import FalTryOnClient, TryOnClient
from services.input_service import Attachment, JsonTryOnInput, MultipartTryOnInput, TryOnInput
from services.tryon_service import process_tryon

# Setup logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Virtual Try-On Agent")

# Bearer token for admin endpoints
security = HTTPBearer(auto_error=False)

_budget_ledger: BudgetLedger = InMemoryBudgetLedger(config.PER_USER_LIMIT)
_tryon_client: Optional[TryOnClient] = None


def get_budget_ledger() -> BudgetLedger:
    return _budget_ledger


def get_tryon_client() -> TryOnClient:
    """Build the fal.ai client on first use"""
    global _tryon_client
    if _tryon_client is None:
        uploader = None
        if config.cloudinary_configured():
            from services.cloudinary_service import upload_to_cloudinary
            uploader = upload_to_cloudinary
            logger.info("Binary uploads will be stored in Cloudinary")
        _tryon_client = FalTryOnClient(uploader=uploader)
    return _tryon_client


async def verify_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Security(security)):
    """Verify API key from Bearer token"""
    if not config.API_KEY:
        logger.warning("API_KEY not configured. Authentication disabled.")
        return True

    if credentials is None or credentials.credentials != config.API_KEY:
        raise HTTPException(
            status_code=401,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return True


def get_user_id(request: Request) -> str:
    """Session id header, else forwarded/real client address, else anonymous"""
    session_id = request.headers.get("x-session-id", "").strip()
    if session_id:
        return session_id
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


def error_response(
    status_code: int,
    error: str,
    budget: Optional[BudgetSnapshot] = None,
    estimated_cost: Optional[float] = None,
    details: Any = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        userBudget=budget.to_dict() if budget is not None else None,
        estimatedCost=estimated_cost,
        details=None if config.is_production() else details,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _form_text(value: Union[str, UploadFile, None]) -> Optional[str]:
    return value if isinstance(value, str) else None


async def _form_attachment(value: Union[str, UploadFile, None], field_name: str) -> Optional[Attachment]:
    if not isinstance(value, UploadFile):
        return None
    limit = config.MAX_UPLOAD_BYTES
    too_large = ValidationError(f"{field_name} exceeds maximum upload size of {limit} bytes")
    size = getattr(value, "size", None)
    if size is not None and size > limit:
        raise too_large
    data = await value.read(limit + 1)
    if len(data) > limit:
        raise too_large
    if not data:
        return None
    return Attachment(
        filename=value.filename or "upload.png",
        content_type=value.content_type or "application/octet-stream",
        data=data,
    )


async def parse_tryon_input(request: Request) -> TryOnInput:
    """Read the body as multipart form data or JSON"""
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        human_image = form.get("humanImage")
        garment_image = form.get("garmentImage")
        return MultipartTryOnInput(
            human_image=await _form_attachment(human_image, "humanImage"),
            human_image_url=_form_text(form.get("humanImageUrl")) or _form_text(human_image),
            garment_image=await _form_attachment(garment_image, "garmentImage"),
            garment_image_url=_form_text(form.get("garmentImageUrl")) or _form_text(garment_image),
            garment_description=_form_text(form.get("garmentDescription")),
            garment_type=_form_text(form.get("garmentType")),
        )

    if content_type and not content_type.startswith("application/json"):
        raise ValidationError(f"Unsupported content type: {content_type}")

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("malformed JSON body") from e

    try:
        payload = TryOnJsonRequest.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError("invalid request body") from e

    return JsonTryOnInput(
        human_image_url=payload.humanImageUrl,
        garment_image_url=payload.garmentImageUrl,
        garment_description=payload.garmentDescription,
        garment_type=payload.garmentType,
    )


@app.post(
    "/api/agent/process-tryon",
    response_model=TryOnSuccessResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 402: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def process_tryon_endpoint(
    request: Request,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    client: TryOnClient = Depends(get_tryon_client),
):
    """Budget-gated virtual try-on"""
    logger.info("Processing virtual try-on request")
    user_id = get_user_id(request)
    logger.info(f"User ID: {user_id}")

    try:
        raw = await parse_tryon_input(request)
        outcome = await process_tryon(raw, user_id, ledger, client)
    except TryOnError:
        raise
    except Exception as e:
        logger.exception(f"Unclassified error processing try-on for user {user_id}: {str(e)}")
        return error_response(500, "Internal server error", details={"type": type(e).__name__, "message": str(e)})

    logger.info(f"Virtual try-on completed for user {user_id}")
    return outcome.to_response()


@app.get("/api/agent/process-tryon", response_model=ServiceStatus)
async def service_status():
    """Service status and pricing"""
    return ServiceStatus(
        status="ok",
        service="virtual-tryon-agent",
        features=["budget-gating", "fal-ai-integration", "garment-generation"],
        baseCost=float(config.BASE_COST),
        generationCost=float(config.GENERATION_COST),
        userLimit=float(config.PER_USER_LIMIT),
    )


@app.get("/api/admin/budgets", response_model=BudgetListing)
async def list_budgets(
    ledger: BudgetLedger = Depends(get_budget_ledger),
    verified: bool = Depends(verify_api_key),
):
    return BudgetListing(limit=float(ledger.limit), users=ledger.get_all_spending())


@app.delete("/api/admin/budgets/{user_id}", response_model=ResetResponse)
async def reset_budget(
    user_id: str,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    verified: bool = Depends(verify_api_key),
):
    ledger.reset(user_id)
    logger.info(f"Reset budget for user: {user_id}")
    return ResetResponse(reset={"userId": user_id})


@app.delete("/api/admin/budgets", response_model=ResetResponse)
async def reset_all_budgets(
    ledger: BudgetLedger = Depends(get_budget_ledger),
    verified: bool = Depends(verify_api_key),
):
    ledger.reset_all()
    logger.info("Reset all user budgets")
    return ResetResponse(reset={"all": True})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return error_response(exc.status_code, exc.message)


@app.exception_handler(BudgetExceededError)
async def budget_exceeded_handler(request: Request, exc: BudgetExceededError):
    return error_response(exc.status_code, exc.message, budget=exc.snapshot, estimated_cost=float(exc.estimated_cost))


@app.exception_handler(ExternalServiceError)
async def external_service_error_handler(request: Request, exc: ExternalServiceError):
    details: Dict[str, Any] = {"step": exc.step, **exc.detail}
    message = "External service call failed" if config.is_production() else exc.message
    return error_response(exc.status_code, message, details=details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "invalid request", details=jsonable_encoder(exc.errors()))


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT, log_level=config.LOG_LEVEL)

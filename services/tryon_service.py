"""Virtual try-on processing service

Sequences one request through:

    Validating -> BudgetCheck -> [Uploading] -> [Generating] -> Composing
        -> RecordingSpend -> Responding

with terminal failures ValidationFailed, BudgetExceeded and ExternalCallFailed.

Admission reserves the estimated cost atomically, so concurrent requests for
one user cannot overspend the limit together. The user is charged the flat
estimate only when composition succeeds; a failure after generation leaves the
provider-side generation cost unrecovered and charges nothing. Provider
metered cost is never reconciled against the estimate.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from services.budget_service import BudgetLedger, BudgetSnapshot
from services.errors import BudgetExceededError, ExternalServiceError, ValidationError
from services.fal_service import ExternalCallResult, TryOnClient
from services.garment_description_service import build_generation_prompt
from services.input_service import CostEstimate, ImageSource, TryOnInput, resolve_request

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    VALIDATING = "validating"
    BUDGET_CHECK = "budget_check"
    UPLOADING = "uploading"
    GENERATING = "generating"
    COMPOSING = "composing"
    RECORDING_SPEND = "recording_spend"
    RESPONDING = "responding"
    VALIDATION_FAILED = "validation_failed"
    BUDGET_EXCEEDED = "budget_exceeded"
    EXTERNAL_CALL_FAILED = "external_call_failed"


@dataclass
class PipelineTrace:
    user_id: str
    states: List[PipelineState] = field(default_factory=list)

    def enter(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.info(f"[{self.user_id}] -> {state.value}")


@dataclass
class TryOnOutcome:
    user_id: str
    result: ExternalCallResult
    cost: CostEstimate
    budget: BudgetSnapshot
    garment_type: str
    used_description: bool
    generated_garment: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "success": True,
            "result": self.result.to_dict(),
            "cost": float(self.cost.total),
            "userBudget": self.budget.to_dict(),
            "metadata": {
                "userId": self.user_id,
                "garmentType": self.garment_type,
                "usedDescription": self.used_description,
                "timestamp": self.timestamp,
            },
        }
        if self.generated_garment:
            response["generatedGarment"] = self.generated_garment
        return response


async def _resolve_url(client: TryOnClient, source: ImageSource) -> str:
    if source.is_binary:
        url = await client.upload_binary(source.data, source.filename or "image.png")
        logger.info(f"Uploaded {source.filename} -> {url}")
        return url
    return source.url


async def process_tryon(
    raw: TryOnInput,
    user_id: str,
    ledger: BudgetLedger,
    client: TryOnClient,
    trace: Optional[PipelineTrace] = None,
) -> TryOnOutcome:
    """Run one try-on request end to end and return the outcome"""
    trace = trace or PipelineTrace(user_id=user_id)

    trace.enter(PipelineState.VALIDATING)
    try:
        request, cost = resolve_request(raw)
    except ValidationError as e:
        trace.enter(PipelineState.VALIDATION_FAILED)
        logger.warning(f"Validation failed for user {user_id}: {e.message}")
        raise

    trace.enter(PipelineState.BUDGET_CHECK)
    reservation = ledger.reserve(user_id, cost.total)
    if reservation is None:
        trace.enter(PipelineState.BUDGET_EXCEEDED)
        snapshot = ledger.check_budget(user_id, cost.total)
        logger.warning(
            f"User {user_id} budget limit reached: spent={snapshot.spent} "
            f"remaining={snapshot.remaining} limit={snapshot.limit} cost={cost.total}"
        )
        raise BudgetExceededError("User budget limit reached", snapshot=snapshot, estimated_cost=cost.total)

    try:
        if request.human_image.is_binary or (request.garment_image and request.garment_image.is_binary):
            trace.enter(PipelineState.UPLOADING)
        human_url = await _resolve_url(client, request.human_image)

        generated_garment = None
        if request.needs_generation:
            trace.enter(PipelineState.GENERATING)
            prompt = build_generation_prompt(request.garment_description, request.garment_type)
            generated = await client.generate_image(prompt)
            generated_garment = generated.url
            garment_url = generated.url
        else:
            garment_url = await _resolve_url(client, request.garment_image)

        trace.enter(PipelineState.COMPOSING)
        result = await client.compose_tryon(human_url, garment_url, request.garment_type)
    except Exception as e:
        step = trace.states[-1].value
        trace.enter(PipelineState.EXTERNAL_CALL_FAILED)
        ledger.release(reservation)
        if isinstance(e, ExternalServiceError):
            logger.error(f"External call failed for user {user_id} at {e.step}: {e.message}")
            raise
        logger.error(f"External call failed for user {user_id} at {step}: {type(e).__name__}: {str(e)}")
        raise ExternalServiceError(f"{step} failed: {str(e)}", step=step, detail={"type": type(e).__name__}) from e
    except BaseException:
        ledger.release(reservation)
        raise

    trace.enter(PipelineState.RECORDING_SPEND)
    ledger.commit(reservation)
    snapshot = ledger.check_budget(user_id, 0)
    logger.info(f"Updated budget for user {user_id}: {snapshot.to_dict()}")

    trace.enter(PipelineState.RESPONDING)
    return TryOnOutcome(
        user_id=user_id,
        result=result,
        cost=cost,
        budget=snapshot,
        garment_type=request.garment_type,
        used_description=request.needs_generation,
        generated_garment=generated_garment,
    )

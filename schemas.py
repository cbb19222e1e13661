"""Pydantic models for request/response"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

GarmentType = Literal["upper_body", "lower_body", "dresses"]
GARMENT_TYPES = ("upper_body", "lower_body", "dresses")
DEFAULT_GARMENT_TYPE = "upper_body"


class TryOnJsonRequest(BaseModel):
    """Text-only encoding: every image is referenced by URL"""
    humanImageUrl: Optional[str] = Field(None, description="Person image URL (required)")
    garmentImageUrl: Optional[str] = Field(None, description="Garment image URL")
    garmentDescription: Optional[str] = Field(None, description="Text used to generate a garment when no image is given")
    garmentType: Optional[str] = Field(None, description="upper_body, lower_body or dresses")


class TryOnResult(BaseModel):
    imageUrl: str
    width: Optional[int] = None
    height: Optional[int] = None
    seed: Optional[int] = None
    hasNsfwConcepts: Any = None


class UserBudget(BaseModel):
    spent: float
    remaining: float
    limit: float


class TryOnMetadata(BaseModel):
    userId: str
    garmentType: GarmentType
    usedDescription: bool
    timestamp: str


class TryOnSuccessResponse(BaseModel):
    success: Literal[True] = True
    result: TryOnResult
    generatedGarment: Optional[str] = None
    cost: float
    userBudget: UserBudget
    metadata: TryOnMetadata


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    userBudget: Optional[UserBudget] = None
    estimatedCost: Optional[float] = None
    details: Optional[Any] = None


class ServiceStatus(BaseModel):
    status: str
    service: str
    features: List[str]
    baseCost: float
    generationCost: float
    userLimit: float


class UserSpending(BaseModel):
    userId: str
    spent: float
    remaining: float


class BudgetListing(BaseModel):
    limit: float
    users: List[UserSpending]


class ResetResponse(BaseModel):
    success: bool = True
    reset: Dict[str, Any]

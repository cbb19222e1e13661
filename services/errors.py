"""Failure taxonomy for the try-on pipeline"""
from decimal import Decimal
from typing import Any, Dict, Optional


class TryOnError(Exception):
    """Base class for failures that map onto an HTTP status"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TryOnError):
    """Missing or contradictory request input. Never touches the ledger."""
    status_code = 400


class BudgetExceededError(TryOnError):
    """The user's remaining budget cannot cover the estimated cost"""
    status_code = 402

    def __init__(self, message: str, snapshot: Any, estimated_cost: Decimal):
        super().__init__(message)
        self.snapshot = snapshot
        self.estimated_cost = estimated_cost


class ExternalServiceError(TryOnError):
    """Upload, generation or composition call failed"""
    status_code = 500

    def __init__(self, message: str, step: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.step = step
        self.detail = detail or {}

"""
Custom exceptions for the Lead Qualifier API.
Provides consistent error handling across the scoring engine, trainer and dispatcher.
"""
from fastapi import HTTPException, status


class LeadQualifierException(Exception):
    """Base exception for Lead Qualifier"""
    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(LeadQualifierException):
    """Resource not found"""
    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class UnauthorizedError(LeadQualifierException):
    """Authentication failed"""
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class ValidationError(LeadQualifierException):
    """Validation failed"""
    def __init__(self, message: str = "Validation failed", field: str = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message)


# --- Scoring configuration ---

class ConfigurationError(LeadQualifierException):
    """Scoring configuration is missing or invalid. Fatal to the scoring call."""


class NoCriteriaError(ConfigurationError):
    """No ICP criteria (or only zero weights) configured for the organization"""
    def __init__(self, org_id=None):
        message = "No ICP criteria configured"
        if org_id:
            message = f"No ICP criteria configured for organization '{org_id}'"
        super().__init__(message)


class InvalidThresholdsError(ConfigurationError):
    """Label thresholds are not monotonic"""
    def __init__(self, hot: float, warm: float):
        self.hot = hot
        self.warm = warm
        super().__init__(
            f"Label thresholds must satisfy 0 <= warm < hot <= 100 (got hot={hot}, warm={warm})"
        )


class ModelLifecycleError(ConfigurationError):
    """Requested model state transition is not allowed"""


# --- Data quality ---

class DataQualityError(LeadQualifierException):
    """Feature extraction is impossible for this lead"""


# --- Learned models ---

class ModelError(LeadQualifierException):
    """A learned model could not be trained or could not produce a score"""


class InsufficientDataError(ModelError):
    """Not enough (or too imbalanced) outcomes to train a model"""
    def __init__(self, total: int, required: int, per_class: dict = None, required_per_class: int = None):
        self.total = total
        self.required = required
        self.per_class = per_class or {}
        if total < required:
            message = f"Insufficient training data. Need at least {required} outcomes, have {total}."
        else:
            counts = ", ".join(f"{label}={count}" for label, count in sorted(self.per_class.items()))
            message = (
                f"Training data too imbalanced. Need at least {required_per_class} outcomes "
                f"per class, have {counts}."
            )
        super().__init__(message)


class TrainingInProgressError(LeadQualifierException):
    """A training run is already in flight for this organization"""
    def __init__(self, org_id=None):
        super().__init__(f"Model training already in progress for organization '{org_id}'")


# --- Webhooks ---

class DeliveryError(LeadQualifierException):
    """Webhook subscriber unreachable or answered with a non-2xx status"""
    def __init__(self, message: str = "Webhook delivery failed", status_code: int = None, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


# HTTP Exception helpers
def raise_not_found(resource: str = "Resource", resource_id: str = None):
    """Raise 404 HTTPException"""
    err = NotFoundError(resource, resource_id)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=err.message)


def raise_unauthorized(message: str = "Could not validate credentials"):
    """Raise 401 HTTPException"""
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def raise_validation_error(message: str = "Validation failed", field: str = None):
    """Raise 422 HTTPException"""
    err = ValidationError(message, field)
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=err.message)


def status_code_for(exc: LeadQualifierException) -> int:
    """Map a domain exception to the HTTP status returned to API callers."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, UnauthorizedError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, TrainingInProgressError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (ConfigurationError, ValidationError, InsufficientDataError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, DeliveryError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR

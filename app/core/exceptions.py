"""
Custom exceptions for the campaign engine.
"""
from typing import Optional


class CampaignEngineException(Exception):
    """Base exception for every engine error."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class DatabaseError(CampaignEngineException):
    """Storage backend error (Supabase)."""
    pass


class ValidationError(CampaignEngineException):
    """Invalid input, rejected before any state is created."""
    pass


class EmptyAudienceError(ValidationError):
    """Segment resolved to zero customers."""

    def __init__(self, segment_id: str):
        super().__init__(
            "No customers found in segment",
            {"segment_id": segment_id},
        )


class NotFoundError(CampaignEngineException):
    """Resource not found."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None
    ):
        message = f"{resource} not found"
        details = {}
        if identifier:
            details["id"] = identifier
        super().__init__(message, details)


class InvalidStateError(CampaignEngineException):
    """Transition not allowed from the entity's current status."""
    pass


class ConfigurationError(CampaignEngineException):
    """Missing or invalid configuration."""
    pass

"""
Exception types raised by the experiment services.

Every error carries the HTTP status that the API blueprint answers with.
"""

from typing import Any, Dict, Optional


class ExperimentError(Exception):
    """Base class for errors surfaced to the participant's client."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'success': False, 'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ExperimentError):
    """Payload failed its schema constraints. Nothing was stored."""

    status_code = 400


class NotFoundError(ExperimentError):
    status_code = 404


class StepTransitionError(ExperimentError):
    """The requested step change is not the next legal transition."""

    status_code = 409


class StorageUnavailableError(ExperimentError):
    """The database could not be reached. The client may retry."""

    status_code = 503


class GenerationError(ExperimentError):
    """The external recommender failed while preparing an experiment."""

    status_code = 502

"""
Exception taxonomy for the NLU server and its mapping to HTTP status codes.
"""
from typing import Any, Dict, Optional


class NLUServerError(Exception):
    """Base exception for NLU server errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the error envelope returned by the API."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }


class InvalidInputError(NLUServerError):
    """Raised when a request payload fails validation."""

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_INPUT", details)


class ModelNotFoundError(NLUServerError):
    """Raised when no persisted model matches a model id and password."""

    def __init__(self, model_id: str, message: Optional[str] = None):
        super().__init__(message or f"modelId {model_id} can't be found", "MODEL_NOT_FOUND", {"model_id": model_id})


class TrainingNotFoundError(NLUServerError):
    """Raised when neither a live training nor a persisted model exists."""

    def __init__(self, model_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"no model or training could be found for modelId: {model_id}",
            "TRAINING_NOT_FOUND",
            {"model_id": model_id},
        )


class TrainingError(NLUServerError):
    """Raised when the training pipeline fails."""

    def __init__(self, message: str = "Training failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRAINING_ERROR", details)


class TrainingCanceledError(TrainingError):
    """Raised inside the training pipeline once cancellation was requested."""

    def __init__(self, model_id: str):
        super().__init__(f"training of {model_id} was canceled", {"model_id": model_id})
        self.error_code = "TRAINING_CANCELED"


class PredictionError(NLUServerError):
    """Raised when anything goes wrong while serving a prediction."""

    def __init__(self, message: str = "Prediction failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PREDICTION_ERROR", details)


# --- HTTP Status Mapping ---
# Invalid input maps to 500 and any prediction failure to 404.
EXCEPTION_STATUS_MAP = {
    InvalidInputError: 500,
    ModelNotFoundError: 404,
    TrainingNotFoundError: 404,
    PredictionError: 404,
    TrainingError: 500,
    NLUServerError: 500,
}


def get_http_status_code(exception: NLUServerError) -> int:
    """Get appropriate HTTP status code for an exception."""
    for exc_type, status_code in EXCEPTION_STATUS_MAP.items():
        if isinstance(exception, exc_type):
            return status_code
    return 500

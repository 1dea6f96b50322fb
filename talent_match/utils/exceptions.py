"""
Custom Exception Classes for Talent Match API
"""
from typing import Dict, Any, Optional
from fastapi import HTTPException


class TalentMatchError(Exception):
    """Base exception for Talent Match API"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(TalentMatchError):
    """Raised when client input fails validation"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class NotFoundError(TalentMatchError):
    """Raised when a requested resource does not exist for the caller"""

    def __init__(self, message: str, resource: str = None, resource_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if resource:
            details['resource'] = resource
        if resource_id:
            details['resource_id'] = resource_id
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class DatabaseError(TalentMatchError):
    """Raised when database operations fail"""

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        if collection:
            details['collection'] = collection
        super().__init__(message, error_code="DATABASE_ERROR", details=details, **kwargs)


class StorageError(TalentMatchError):
    """Raised when raw document storage fails"""

    def __init__(self, message: str, path: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if path:
            details['path'] = path
        super().__init__(message, error_code="STORAGE_ERROR", details=details, **kwargs)


class ModelError(TalentMatchError):
    """Raised when AI model operations fail"""

    def __init__(self, message: str, model_name: str = None, model_type: str = None, **kwargs):
        details = kwargs.pop('details', {})
        error_code = kwargs.pop('error_code', "MODEL_ERROR")
        if model_name:
            details['model_name'] = model_name
        if model_type:
            details['model_type'] = model_type
        super().__init__(message, error_code=error_code, details=details, **kwargs)


class AIResponseError(ModelError):
    """Raised when the AI service answers with content that cannot be trusted (truncated, not JSON, wrong shape)"""

    def __init__(self, message: str, task: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if task:
            details['task'] = task
        super().__init__(message, error_code="AI_RESPONSE_ERROR", details=details, **kwargs)


class ProcessingError(TalentMatchError):
    """Raised when resume/match processing fails"""

    def __init__(self, message: str, document_id: str = None, document_type: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if document_id:
            details['document_id'] = document_id
        if document_type:
            details['document_type'] = document_type
        super().__init__(message, error_code="PROCESSING_ERROR", details=details, **kwargs)


class ConfigurationError(TalentMatchError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class AuthenticationError(TalentMatchError):
    """Raised when authentication fails"""

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, error_code="AUTHENTICATION_ERROR", **kwargs)


class RateLimitError(TalentMatchError):
    """Raised when the upstream service rate limits us"""

    def __init__(self, message: str, retry_after: Optional[float] = None, service_name: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if retry_after is not None:
            details['retry_after'] = retry_after
        if service_name:
            details['service_name'] = service_name
        self.retry_after = retry_after
        super().__init__(message, error_code="RATE_LIMIT_ERROR", details=details, **kwargs)


class ExternalServiceError(TalentMatchError):
    """Raised when external service calls fail"""

    def __init__(
        self,
        message: str,
        service_name: str = None,
        status_code: int = None,
        retryable: bool = False,
        retry_after: Optional[float] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message, error_code="EXTERNAL_SERVICE_ERROR", details=details, **kwargs)


def is_transient(exc: BaseException) -> bool:
    """True for rate limits and transient upstream failures (5xx, transport)."""
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, ExternalServiceError):
        return exc.retryable
    return False


# Most specific class wins: map_to_http_exception walks the MRO
HTTP_STATUS_CODES = {
    ValidationError: 400,
    AuthenticationError: 401,
    NotFoundError: 404,
    RateLimitError: 429,
    AIResponseError: 502,
    ExternalServiceError: 502,
    TalentMatchError: 500,
}


def status_code_for(exc: TalentMatchError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS_CODES:
            return HTTP_STATUS_CODES[cls]
    return 500


def map_to_http_exception(exc: TalentMatchError) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""
    return HTTPException(
        status_code=status_code_for(exc),
        detail={"error": exc.to_dict(), "message": exc.message},
    )


class ExceptionContext:
    """
    Logs the start/end of an operation and re-raises anything that is not
    already a TalentMatchError as `wrap_as`, keeping the original as cause.
    """

    def __init__(self, operation: str, logger=None, wrap_as=ProcessingError, message: str = None, **context):
        self.operation = operation
        self.logger = logger
        self.wrap_as = wrap_as
        self.message = message
        self.context = context

    def __enter__(self):
        if self.logger:
            self.logger.debug(f"Starting operation: {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            if self.logger:
                self.logger.debug(f"Operation completed: {self.operation}", extra=self.context)
            return False
        if isinstance(exc_val, (TalentMatchError, HTTPException)) or not isinstance(exc_val, Exception):
            return False

        if self.logger:
            self.logger.error(
                f"Operation failed: {self.operation} - {exc_val}",
                extra={**self.context, "exception_type": exc_type.__name__}
            )
        raise self.wrap_as(
            self.message or f"{self.operation} failed: {exc_val}",
            details={"operation": self.operation, **self.context},
            cause=exc_val,
        ) from exc_val

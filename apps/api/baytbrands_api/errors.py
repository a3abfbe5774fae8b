from __future__ import annotations

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


class FieldError(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    field: str
    message: str


class ErrorInfo(BaseModel):
    """Serializable error descriptor carried by aggregates and notifications."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    message: str
    status_code: int
    retryable: bool = False


class DashboardError(Exception):
    code = "internal_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def info(self) -> ErrorInfo:
        return ErrorInfo(
            code=self.code,
            message=self.message,
            status_code=self.status_code,
            retryable=self.retryable,
        )


class ValidationFailed(DashboardError):
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, field_errors: list[FieldError] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or []


class NotFound(DashboardError):
    code = "not_found"
    status_code = 404


class InternalError(DashboardError):
    pass


class NetworkError(DashboardError):
    code = "network_error"
    status_code = 503
    retryable = True


def error_info(exc: BaseException) -> ErrorInfo:
    if isinstance(exc, DashboardError):
        return exc.info()
    # Anything unexpected is opaque to callers.
    return InternalError("Internal server error").info()


def validation_failed(message: str, exc: ValidationError) -> ValidationFailed:
    field_errors = [
        FieldError(field=".".join(str(part) for part in err["loc"]) or "body", message=err["msg"])
        for err in exc.errors()
    ]
    return ValidationFailed(message, field_errors)

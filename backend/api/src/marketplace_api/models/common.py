"""Shared API request/response models.

Domain models (Booking, Payment, ...) live in marketplace.models; this
module only covers HTTP-layer concerns such as validation error formatting.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import ErrorCode, ErrorResponse

__all__ = [
    "ErrorCode",
    "ErrorResponse",
    "ValidationErrorDetail",
    "ValidationErrorResponse",
    "format_validation_errors",
]


class ValidationErrorDetail(BaseModel):
    """Detail of a single validation error."""

    model_config = ConfigDict(strict=True)

    loc: list[str] = Field(
        ...,
        description="Path to the field that failed validation",
        examples=[["body", "number_of_people"]],
    )
    msg: str = Field(..., examples=["Input should be greater than or equal to 1"])
    type: str = Field(..., examples=["greater_than_equal"])


class ValidationErrorResponse(BaseModel):
    """Response format for request validation errors (HTTP 422)."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: str = "ERR_VALIDATION"
    message: str = "Request validation failed"
    recovery: str = "Check the request parameters and try again"
    details: list[ValidationErrorDetail] = Field(default_factory=list)


def format_validation_errors(errors: list[Any]) -> ValidationErrorResponse:
    """Convert Pydantic validation errors to ValidationErrorResponse.

    Args:
        errors: Error dicts from RequestValidationError.errors()
    """
    details = [
        ValidationErrorDetail(
            loc=[str(loc) for loc in error.get("loc", [])],
            msg=str(error.get("msg", "")),
            type=str(error.get("type", "")),
        )
        for error in errors
    ]
    return ValidationErrorResponse(details=details)

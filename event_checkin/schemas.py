"""
Request body schemas

Bodies are checked against these pydantic models before any handler
logic runs. ``validate_body`` returns a ``ValidationResult`` holding
either the parsed model or the ValidationException describing the first
problem found.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ValidationException

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class RequestSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


class CreateEventRequest(RequestSchema):
    name: str
    password: str = Field(min_length=1)
    location: Optional[str] = None
    csv_content: str = Field(alias="csvContent")

    @field_validator("name", "csv_content")
    @classmethod
    def check_not_blank(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()


class SignInRequest(RequestSchema):
    attendee_id: int = Field(alias="attendeeId", gt=0)


class PasswordRequest(RequestSchema):
    """Body of management calls; the password may be replaced by a session"""
    password: Optional[str] = None

    @field_validator("password", mode="before")
    @classmethod
    def password_as_text(cls, value: Any) -> Optional[str]:
        # Non-string passwords are compared as their text form
        if value is None or isinstance(value, str):
            return value
        return str(value)


class AddAttendeeRequest(PasswordRequest):
    name: str
    external_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _not_blank(value).strip()

    @field_validator("external_id")
    @classmethod
    def blank_external_id_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()


@dataclass
class ValidationResult(Generic[SchemaT]):
    """Either a parsed body or the error explaining why it was rejected"""
    value: Optional[SchemaT] = None
    error: Optional[ValidationException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_body(schema: Type[SchemaT], payload: Any) -> ValidationResult[SchemaT]:
    """
    Validate a decoded JSON body against a schema

    Args:
        schema: Pydantic model class to validate with
        payload: Decoded JSON body (None when the body was missing or invalid)

    Returns:
        ValidationResult with the parsed model or the first validation error
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return ValidationResult(error=ValidationException("body", "must be a JSON object"))

    try:
        return ValidationResult(value=schema.model_validate(payload))
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first["loc"]) or "body"
        return ValidationResult(error=ValidationException(field_name, first["msg"]))

"""Form schemas keyed by application code.

The workflow engine treats ``form_data`` as opaque JSON. When form validation
is enabled the payload is checked against the schema registered for the
application's code before the application is created.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import FormDefinitionMissing, ValidationError


class _FormModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
    )


class LeaveForm(_FormModel):
    leave_type: str = Field(min_length=1)
    start_date: date
    end_date: date
    reason: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_period(self) -> "LeaveForm":
        if self.start_date > self.end_date:
            raise ValueError("start date must not be after end date")
        return self


class TitledReportForm(_FormModel):
    """Approval memo (ringi) and weekly report share the same shape."""

    title: str = Field(min_length=1)
    details: str = Field(min_length=1)


class DailyReportForm(_FormModel):
    report_date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    customer_name: Optional[str] = None
    activity_content: str = Field(min_length=1)
    next_day_plan: Optional[str] = None


class ExpenseLine(_FormModel):
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)


class ExpenseForm(_FormModel):
    department_id: Optional[str] = None
    details: List[ExpenseLine] = Field(min_length=1)
    notes: Optional[str] = None
    total_amount: Optional[float] = None


class TransportLeg(_FormModel):
    travel_date: date
    departure: str = Field(min_length=1)
    arrival: str = Field(min_length=1)
    transport_mode: str = Field(min_length=1)
    amount: float = Field(gt=0)


class TransportForm(_FormModel):
    details: List[TransportLeg] = Field(min_length=1)
    notes: Optional[str] = None


FORM_SCHEMAS: Dict[str, Type[_FormModel]] = {
    "EXP": ExpenseForm,
    "TRP": TransportForm,
    "LEV": LeaveForm,
    "APL": TitledReportForm,
    "DLY": DailyReportForm,
    "WKR": TitledReportForm,
}


def register_form(code: str, schema: Type[_FormModel]) -> None:
    FORM_SCHEMAS[code] = schema


def validate_form_data(code: str, form_data: Any) -> Dict[str, Any]:
    """Validate ``form_data`` against the schema for ``code``.

    Returns the payload as a JSON-ready dict with camelCase keys.

    Raises:
        FormDefinitionMissing: No schema is registered for ``code``.
        ValidationError: The payload does not match the schema.
    """
    schema = FORM_SCHEMAS.get(code)
    if schema is None:
        raise FormDefinitionMissing(code)
    if not isinstance(form_data, dict):
        raise ValidationError(f"Form data for {code} must be an object")
    try:
        form = schema.model_validate(form_data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid form data for {code}: {exc}") from exc
    return form.model_dump(mode="json", by_alias=True)

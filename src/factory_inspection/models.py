from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter
from pydantic.alias_generators import to_camel

_URL_ADAPTER = TypeAdapter(AnyUrl)
_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def check_map_link(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return value
    try:
        _URL_ADAPTER.validate_python(value)
    except ValueError as exc:
        raise ValueError("Invalid URL") from exc
    return value


def check_calendar_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not value:
        raise ValueError("Gregorian date is required")
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("Invalid date") from exc
    return value


def check_email(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return value
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValueError as exc:
        raise ValueError("Invalid email address") from exc
    return value


MapLink = Annotated[Optional[str], AfterValidator(check_map_link)]
CalendarDate = Annotated[str, AfterValidator(check_calendar_date)]
Email = Annotated[Optional[str], AfterValidator(check_email)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FactoryBase(CamelModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    map_link: MapLink = ""


class FactoryCreate(FactoryBase):
    pass


class FactoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = Field(default=None, min_length=1)
    map_link: MapLink = None


class Factory(FactoryBase):
    id: int
    created_at: datetime
    updated_at: datetime


class InspectionFields(CamelModel):
    factory_id: Optional[int] = None
    factory_name: str = Field(min_length=1)
    factory_address: str = Field(min_length=1)
    map_link: MapLink = ""
    inspector: str = Field(min_length=1)
    gregorian_date: CalendarDate
    hebrew_date: Optional[str] = ""
    contact_name: Optional[str] = ""
    contact_phone: Optional[str] = ""
    contact_email: Email = ""
    findings: Optional[str] = ""
    recommendations: Optional[str] = ""


class InspectionCreate(InspectionFields):
    pass


class InspectionUpdate(CamelModel):
    factory_id: Optional[int] = None
    factory_name: Optional[str] = Field(default=None, min_length=1)
    factory_address: Optional[str] = Field(default=None, min_length=1)
    map_link: MapLink = None
    inspector: Optional[str] = Field(default=None, min_length=1)
    gregorian_date: Annotated[Optional[str], AfterValidator(check_calendar_date)] = None
    hebrew_date: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Email = None
    findings: Optional[str] = None
    recommendations: Optional[str] = None


class Inspection(InspectionFields):
    id: int
    created_at: datetime
    updated_at: datetime


# Form step payloads are tagged by ``step`` so a draft validates against the
# schema of the step it belongs to.


class BasicInfoStep(CamelModel):
    step: Literal["basic_info"] = "basic_info"
    factory_name: str = Field(min_length=1)
    inspector: str = Field(min_length=1)
    factory_address: str = Field(min_length=1)
    map_link: MapLink = ""
    hebrew_date: Optional[str] = ""
    gregorian_date: CalendarDate


class ContactInfoStep(CamelModel):
    step: Literal["contact_info"] = "contact_info"
    contact_name: str = Field(min_length=1)
    contact_phone: Optional[str] = ""
    contact_email: Email = ""


class FindingsStep(CamelModel):
    step: Literal["findings"] = "findings"
    findings: Optional[str] = ""
    recommendations: Optional[str] = ""


class ReviewStep(CamelModel):
    step: Literal["review"] = "review"


StepData = Annotated[
    Union[BasicInfoStep, ContactInfoStep, FindingsStep, ReviewStep],
    Field(discriminator="step"),
]


class ReportArchive(BaseModel):
    s3_key: str
    url: Optional[str] = None

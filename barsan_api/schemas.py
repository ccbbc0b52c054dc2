from datetime import date
from typing import Annotated

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, EmailStr, Field, model_validator

from .utils.text import is_valid_phone, sanitize_string
from .utils.time import is_valid_time, time_to_minutes


def _check_time(v: str) -> str:
    if not is_valid_time(v):
        raise ValueError("Time must be HH:MM in 24-hour format.")
    return v


def _check_phone(v: str | None) -> str | None:
    if v and (len(v) > 32 or not is_valid_phone(v)):
        raise ValueError("Phone number must have 9 or 10 digits.")
    return v or None


def _clean(v: str | None) -> str | None:
    return sanitize_string(v) if v else v


ClockTime = Annotated[str, AfterValidator(_check_time)]
Phone = Annotated[str | None, AfterValidator(_check_phone)]
CleanText = Annotated[str, AfterValidator(_clean)]


class Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class RegisterRequest(Request):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: CleanText = Field(..., min_length=1, max_length=120,
                                 validation_alias=AliasChoices("full_name", "fullName"))
    phone: Phone = None


class LoginRequest(Request):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class BookRequest(Request):
    table_id: int = Field(..., gt=0, validation_alias=AliasChoices("table_id", "tableId"))
    date: date
    time: ClockTime
    duration: int | None = Field(None, gt=0)
    party_size: int = Field(..., gt=0, le=50, validation_alias=AliasChoices("party_size", "partySize", "guests"))
    name: CleanText | None = Field(None, min_length=1, max_length=120)
    email: EmailStr | None = None
    phone: Phone = None
    special_requests: CleanText | None = Field(None, max_length=500,
                                               validation_alias=AliasChoices("special_requests", "specialRequests"))


class AvailabilityQuery(Request):
    table_id: int = Field(..., gt=0)
    date: date
    time: ClockTime
    duration: int | None = Field(None, gt=0)
    party_size: int | None = Field(None, gt=0)


class CancelRequest(Request):
    reason: CleanText | None = Field(None, max_length=500)


class CafeCreate(Request):
    name: CleanText = Field(..., min_length=1, max_length=120)
    slug: str = Field(..., pattern=r"^[a-z0-9-]{1,64}$")
    open_time: ClockTime = Field(..., validation_alias=AliasChoices("open_time", "openTime"))
    close_time: ClockTime = Field(..., validation_alias=AliasChoices("close_time", "closeTime"))

    @model_validator(mode="after")
    def _hours_in_one_day(self):
        if time_to_minutes(self.close_time) <= time_to_minutes(self.open_time):
            raise ValueError("Closing time must be after opening time on the same day.")
        return self


class TableCreate(Request):
    number: int = Field(..., gt=0)
    capacity: int = Field(..., gt=0, le=50)
    is_active: bool = Field(True, validation_alias=AliasChoices("is_active", "isActive"))

"""Inbound event payload schemas.

Clients speak camelCase; the models expose snake_case attributes and keep
any extra profile fields so they can be echoed back untouched.
"""
from typing import Any, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
    )


class DriverRegistration(_Payload):
    name: str = Field(min_length=1)
    ambulance_license: Optional[str] = Field(default=None, alias="ambulanceLicense")


class HospitalRegistration(_Payload):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    hospital_location: Optional[Any] = Field(default=None, alias="hospitalLocation")
    lat: Optional[Any] = None
    lng: Optional[Any] = None


class SOSRequest(_Payload):
    sos_id: str = Field(min_length=1, alias="sosId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_mobile: Optional[str] = Field(default=None, alias="userMobile")
    location: Optional[Any] = None
    type: Optional[str] = None


class SOSAcceptance(_Payload):
    sos_id: str = Field(min_length=1, alias="sosId")


class ArrivalReport(_Payload):
    sos_id: str = Field(min_length=1, alias="sosId")
    hospital: Optional[str] = None
    driver_name: Optional[str] = Field(default=None, alias="driverName")


def parse(model, payload):
    """Validate ``payload`` against ``model`` or raise ValidationError."""
    if not isinstance(payload, dict):
        raise ValidationError(f"{model.__name__} payload must be an object")
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) or "payload"
            for err in exc.errors()
        )
        sos_id = payload.get("sosId")
        raise ValidationError(
            f"Invalid {model.__name__}: {fields}",
            sos_id=str(sos_id) if sos_id is not None else None,
        ) from exc

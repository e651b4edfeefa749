"""Request/response contracts for the enquiry endpoint.

EnquiryRequest validates the inbound JSON body ``{fsref, fserial?}``.
Field names are case-sensitive and unknown keys are ignored. Any failure is
reported to the caller as a bare ``"Invalid input"`` 400; the pydantic
error detail is logged (field names only) and never returned.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictStr, field_validator

from fsenquiry.constants import MAX_FIELD_LENGTH


class EnquiryRequest(BaseModel):
    """Inbound enquiry body."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    fsref: StrictStr
    fserial: Optional[StrictStr] = None

    @field_validator("fsref")
    @classmethod
    def _reference_present_and_bounded(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reference is blank")
        if len(value) > MAX_FIELD_LENGTH:
            raise ValueError("reference too long")
        return value

    @field_validator("fserial")
    @classmethod
    def _serial_bounded(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > MAX_FIELD_LENGTH:
            raise ValueError("serial too long")
        return value

    @property
    def reference(self) -> str:
        """Trimmed reference number, as forwarded upstream."""
        return self.fsref.strip()

    @property
    def serial(self) -> str:
        """Trimmed serial number; empty string when absent."""
        return (self.fserial or "").strip()


class EnquiryQuery(BaseModel):
    fsref: str
    fserial: Optional[str] = None


class EnquiryResponse(BaseModel):
    """Successful gateway response: raw upstream HTML plus fetch time."""

    html: str
    fetchedAt: str
    query: EnquiryQuery

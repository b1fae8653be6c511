"""Pydantic request/response models for carrier endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.domain import DetailResult, PackageDetail, PackageManifestEntry


class CarrierLogin(BaseModel):
    username: str = Field(..., min_length=1, description="Driver login without the company prefix.")
    password: str = Field(..., min_length=1, repr=False)
    company_code: str = Field(..., min_length=1, description="Carrier company code, e.g. PCP0010699.")

    @field_validator("username", "company_code")
    @classmethod
    def strip_identifier(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CarrierAuthResponse(BaseModel):
    matricule: str
    token: str
    issued_at: datetime
    expires_at: datetime


class PackagesRequest(CarrierLogin):
    driver_id: Optional[str] = Field(default=None, description="Defaults to the username.")
    tour_date: Optional[date] = Field(default=None, description="Tour day, today (UTC) when omitted.")


class ManifestEntryModel(BaseModel):
    reference: str
    recipient_name: str = ""
    address_lines: List[str] = Field(default_factory=list)
    formatted_address: str = ""
    postal_code: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: Optional[str] = None
    sequence_hint: Optional[int] = None
    phone: Optional[str] = None
    instructions: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: PackageManifestEntry) -> "ManifestEntryModel":
        return cls(
            reference=entry.reference,
            recipient_name=entry.recipient_name,
            address_lines=list(entry.address_lines),
            formatted_address=entry.formatted_address,
            postal_code=entry.postal_code,
            city=entry.city,
            latitude=entry.latitude,
            longitude=entry.longitude,
            status=entry.status,
            sequence_hint=entry.sequence_hint,
            phone=entry.phone,
            instructions=entry.instructions,
        )


class PackagesResponse(BaseModel):
    matricule: str
    tour_date: str
    token_expires_at: datetime
    count: int
    packages: List[ManifestEntryModel]


class DetailsRequest(BaseModel):
    token: str = Field(..., min_length=1, repr=False, description="SsoHopps token from /carrier/auth.")
    references: List[str] = Field(..., min_length=1)


class DetailEventModel(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    place: Optional[str] = None


class PackageDetailModel(BaseModel):
    reference: str
    full_address: Optional[str] = None
    barcode: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    dimensions: Optional[Dict[str, float]] = None
    delivery_window_start: Optional[str] = None
    delivery_window_end: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    instructions: Optional[str] = None
    history: List[DetailEventModel] = Field(default_factory=list)

    @classmethod
    def from_detail(cls, detail: PackageDetail) -> "PackageDetailModel":
        return cls(
            reference=detail.reference,
            full_address=detail.full_address,
            barcode=detail.barcode,
            postal_code=detail.postal_code,
            city=detail.city,
            country=detail.country,
            latitude=detail.latitude,
            longitude=detail.longitude,
            weight=detail.weight,
            weight_unit=detail.weight_unit,
            dimensions=detail.dimensions,
            delivery_window_start=detail.delivery_window_start,
            delivery_window_end=detail.delivery_window_end,
            contact_name=detail.contact_name,
            contact_phone=detail.contact_phone,
            contact_email=detail.contact_email,
            instructions=detail.instructions,
            history=[
                DetailEventModel(
                    date=event.date,
                    time=event.time,
                    status=event.status,
                    description=event.description,
                    place=event.place,
                )
                for event in detail.history
            ],
        )


class DetailResultModel(BaseModel):
    reference: str
    ok: bool
    from_cache: bool = False
    failure_reason: Optional[str] = None
    detail: Optional[PackageDetailModel] = None

    @classmethod
    def from_result(cls, result: DetailResult) -> "DetailResultModel":
        return cls(
            reference=result.reference,
            ok=result.ok,
            from_cache=result.from_cache,
            failure_reason=result.failure_reason,
            detail=PackageDetailModel.from_detail(result.detail) if result.detail is not None else None,
        )


class DetailsResponse(BaseModel):
    succeeded: int
    failed: int
    results: List[DetailResultModel]

"""Domain models for carrier sessions, tour manifests and package details."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass(slots=True)
class CarrierCredentials:
    """Login material for one driver account at one carrier company."""

    username: str
    password: str
    company_code: str

    @property
    def login(self) -> str:
        return compose_matricule(self.company_code, self.username)

    def is_complete(self) -> bool:
        return bool(self.username.strip() and self.password and self.company_code.strip())


def compose_matricule(company_code: str, identifier: str) -> str:
    """Carrier composite identifier, e.g. ``PCP0010699_A187518``."""

    return f"{company_code.strip()}_{identifier.strip()}"


@dataclass(slots=True)
class SessionToken:
    """Carrier-issued ``SsoHopps`` token with its validity window."""

    value: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def issue(cls, value: str, lifetime_hours: int, now: Optional[datetime] = None) -> "SessionToken":
        issued_at = now or datetime.now(timezone.utc)
        return cls(value=value, issued_at=issued_at, expires_at=issued_at + timedelta(hours=lifetime_hours))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def masked(self) -> str:
        if len(self.value) <= 12:
            return "***"
        return f"{self.value[:6]}...{self.value[-4:]}"


@dataclass(slots=True)
class Depot:
    """Start and end point of the delivery vehicle."""

    code: str
    latitude: float
    longitude: float


@dataclass(slots=True)
class PackageManifestEntry:
    """One parcel of a driver's tour as listed by the carrier."""

    reference: str
    recipient_name: str
    address_lines: tuple[str, ...]
    postal_code: Optional[str]
    city: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    status: Optional[str]
    sequence_hint: Optional[int]
    phone: Optional[str] = None
    instructions: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def formatted_address(self) -> str:
        locality = " ".join(part for part in (self.postal_code, self.city) if part)
        parts = [*self.address_lines, locality]
        return ", ".join(part for part in parts if part)


@dataclass(slots=True)
class DetailEvent:
    date: Optional[str]
    time: Optional[str]
    status: Optional[str]
    description: Optional[str] = None
    place: Optional[str] = None


@dataclass(slots=True)
class PackageDetail:
    """Shipment detail returned by the carrier tracking endpoint."""

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
    dimensions: Optional[dict[str, float]] = None
    delivery_window_start: Optional[str] = None
    delivery_window_end: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    instructions: Optional[str] = None
    history: list[DetailEvent] = field(default_factory=list)


@dataclass(slots=True)
class DetailResult:
    """Outcome of one detail lookup: either a detail or a failure reason."""

    reference: str
    detail: Optional[PackageDetail] = None
    failure_reason: Optional[str] = None
    from_cache: bool = False

    @classmethod
    def succeeded(cls, reference: str, detail: PackageDetail, *, from_cache: bool = False) -> "DetailResult":
        return cls(reference=reference, detail=detail, from_cache=from_cache)

    @classmethod
    def failed(cls, reference: str, reason: str) -> "DetailResult":
        return cls(reference=reference, failure_reason=reason)

    @property
    def ok(self) -> bool:
        return self.detail is not None

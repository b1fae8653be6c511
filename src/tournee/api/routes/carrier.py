"""Carrier endpoints: login, tour manifest and package details."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...config import settings
from ...models.domain import SessionToken, compose_matricule
from ...schemas.carrier import (
    CarrierAuthResponse,
    CarrierLogin,
    DetailResultModel,
    DetailsRequest,
    DetailsResponse,
    ManifestEntryModel,
    PackagesRequest,
    PackagesResponse,
)
from ...services.carrier.client import CarrierClient, normalize_tour_date
from ..deps import get_carrier_client
from ..errors import http_error

router = APIRouter(prefix="/carrier", tags=["carrier"])


@router.post("/auth", response_model=CarrierAuthResponse, status_code=status.HTTP_200_OK)
async def authenticate(payload: CarrierLogin, carrier: CarrierClient = Depends(get_carrier_client)) -> CarrierAuthResponse:
    try:
        token = await carrier.authenticate(payload.username, payload.password, payload.company_code)
    except Exception as exc:
        raise http_error(exc, "authenticate with the carrier") from exc
    return CarrierAuthResponse(
        matricule=compose_matricule(payload.company_code, payload.username),
        token=token.value,
        issued_at=token.issued_at,
        expires_at=token.expires_at,
    )


@router.post("/packages", response_model=PackagesResponse, status_code=status.HTTP_200_OK)
async def packages(payload: PackagesRequest, carrier: CarrierClient = Depends(get_carrier_client)) -> PackagesResponse:
    """Log in and return the driver's tour for the requested day."""
    driver_id = payload.driver_id or payload.username
    try:
        tour_date = normalize_tour_date(payload.tour_date)
        token = await carrier.authenticate(payload.username, payload.password, payload.company_code)
        manifest = await carrier.get_manifest(driver_id, payload.company_code, tour_date, token)
    except Exception as exc:
        raise http_error(exc, "retrieve the tour") from exc
    return PackagesResponse(
        matricule=compose_matricule(payload.company_code, driver_id),
        tour_date=tour_date,
        token_expires_at=token.expires_at,
        count=len(manifest),
        packages=[ManifestEntryModel.from_entry(entry) for entry in manifest],
    )


@router.post("/details", response_model=DetailsResponse, status_code=status.HTTP_200_OK)
async def details(payload: DetailsRequest, carrier: CarrierClient = Depends(get_carrier_client)) -> DetailsResponse:
    """Look up tracking details with a token obtained from ``/carrier/auth``."""
    references = [reference.strip() for reference in payload.references if reference.strip()]
    if not references:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "BAD_REQUEST", "message": "At least one package reference is required."},
        )
    # The carrier does not report the token's expiry; assume a fresh one.
    token = SessionToken.issue(payload.token, settings.carrier_token_lifetime_hours)
    try:
        results = await carrier.fetch_details(references, token)
    except Exception as exc:
        raise http_error(exc, "fetch package details") from exc
    models = [DetailResultModel.from_result(result) for result in results.values()]
    succeeded = sum(1 for model in models if model.ok)
    return DetailsResponse(succeeded=succeeded, failed=len(models) - succeeded, results=models)

"""Async HTTP client for the Colis Prive carrier web API."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Iterable, MutableMapping

import httpx

from ...config import settings
from ...models.domain import (
    CarrierCredentials,
    DetailResult,
    PackageManifestEntry,
    SessionToken,
    compose_matricule,
)
from ...models.errors import AuthError, AuthErrorKind, FetchError, FetchErrorKind
from ..cache.detail_cache import DetailCache
from .parsing import decode_tournee_body, parse_detail, parse_manifest
from .token import extract_token

AUTH_PATH = "/api/auth/login/Membership"
TOURNEE_PATH = "/WS-TourneeColis/api/getTourneeByMatriculeDistributeurDateDebut_POST"
DETAIL_PATH = "/WS-TourneeColis/api/GetBeanSuiviColisByRefColisWithTracabilite/{reference}"
TOKEN_HEADER = "SsoHopps"

# The carrier only accepts calls that look like its own web front-end.
CARRIER_ORIGIN = "https://gestiontournee.colisprive.com"
BROWSER_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "fr-FR,fr;q=0.6",
    "Connection": "keep-alive",
    "Content-Type": "application/json",
    "Origin": CARRIER_ORIGIN,
    "Referer": f"{CARRIER_ORIGIN}/",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-site",
    "Sec-GPC": "1",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36"
    ),
    "sec-ch-ua": '"Chromium";v="140", "Not=A?Brand";v="24", "Brave";v="140"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
}

logger = logging.getLogger(__name__)


def _snippet(text: str, limit: int = 200) -> str:
    return text[:limit].replace("\n", " ")


def normalize_tour_date(value: date | str | None) -> str:
    """Return the ``YYYY-MM-DD`` date sent as ``DateDebut`` (today in UTC by default)."""
    if value is None:
        return datetime.now(timezone.utc).date().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError as exc:
        raise ValueError(f"Tour date must be an ISO-8601 date (YYYY-MM-DD), got '{value}'.") from exc


class CarrierClient:
    """Talks to the carrier's authentication, tour and package-detail services.

    The ``httpx.AsyncClient`` is shared with the rest of the process and is
    never closed here.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        auth_url: str | None = None,
        tournee_url: str | None = None,
        detail_url: str | None = None,
        token_lifetime_hours: int | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        detail_cache: DetailCache | None = None,
    ) -> None:
        self.auth_url = (auth_url or settings.carrier_auth_url or "").rstrip("/")
        self.tournee_url = (tournee_url or settings.carrier_tournee_url or "").rstrip("/")
        self.detail_url = (detail_url or settings.carrier_detail_url or self.tournee_url).rstrip("/")
        if not self.auth_url or not self.tournee_url:
            raise ValueError("Carrier auth/tour base URLs are not configured.")
        self.http = http_client
        self.token_lifetime_hours = token_lifetime_hours or settings.carrier_token_lifetime_hours
        self.timeout = timeout if timeout is not None else settings.carrier_timeout_seconds
        self.batch_size = batch_size or settings.detail_batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else settings.detail_batch_delay_seconds
        )
        self.detail_cache = detail_cache

    async def authenticate(self, username: str, password: str, company_code: str) -> SessionToken:
        """Log in as ``<company>_<username>`` and return the ``SsoHopps`` session token."""
        credentials = CarrierCredentials(username=username, password=password, company_code=company_code)
        if not credentials.is_complete():
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Username, password and company code are required.")

        payload = {
            "login": credentials.login,
            "password": credentials.password,
            "societe": credentials.company_code,
            "commun": {"dureeTokenInHour": self.token_lifetime_hours},
        }
        url = f"{self.auth_url}{AUTH_PATH}"
        logger.info(f"Authenticating {credentials.login} against carrier")

        try:
            response = await self.http.post(url, json=payload, headers=BROWSER_HEADERS, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise AuthError(AuthErrorKind.NETWORK, f"Carrier authentication unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise AuthError(
                AuthErrorKind.NETWORK,
                f"Carrier authentication failed with HTTP {response.status_code}: {_snippet(response.text)}",
            )
        if not response.is_success:
            logger.warning(f"Carrier rejected credentials for {credentials.login} (HTTP {response.status_code})")
            raise AuthError(
                AuthErrorKind.INVALID_CREDENTIALS,
                f"Carrier rejected credentials (HTTP {response.status_code}): {_snippet(response.text)}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError(AuthErrorKind.MALFORMED_RESPONSE, f"Authentication response is not JSON: {exc}") from exc

        found = extract_token(body)
        if found is None:
            keys = sorted(body.keys()) if isinstance(body, dict) else type(body).__name__
            logger.error(f"SsoHopps token not found in authentication response (fields: {keys})")
            raise AuthError(AuthErrorKind.TOKEN_NOT_FOUND, "SsoHopps token not found in authentication response.")

        token_value, path = found
        token = SessionToken.issue(token_value, self.token_lifetime_hours)
        logger.info(f"Carrier token obtained from {path} for {credentials.login}: {token.masked()}")
        return token

    async def get_manifest(
        self,
        driver_id: str,
        company_code: str,
        tour_date: date | str | None,
        token: SessionToken,
    ) -> list[PackageManifestEntry]:
        """Fetch the parcels of ``<company>_<driver>``'s tour for ``tour_date``."""
        if token.is_expired():
            raise FetchError(FetchErrorKind.UNAUTHORIZED, "Session token expired before fetching the tour.")

        matricule = compose_matricule(company_code, driver_id)
        payload = {"DateDebut": normalize_tour_date(tour_date), "Matricule": matricule}
        url = f"{self.tournee_url}{TOURNEE_PATH}"
        headers = {**BROWSER_HEADERS, TOKEN_HEADER: token.value}
        logger.info(f"Fetching tour for {matricule} on {payload['DateDebut']}")

        try:
            response = await self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise FetchError(FetchErrorKind.NETWORK, f"Carrier tour service unreachable: {exc}") from exc

        if response.status_code in (401, 403):
            raise FetchError(FetchErrorKind.UNAUTHORIZED, f"Carrier rejected session token (HTTP {response.status_code}).")
        if response.status_code == 404:
            raise FetchError(FetchErrorKind.NOT_FOUND, f"No tour found for {matricule}.")
        if not response.is_success:
            raise FetchError(
                FetchErrorKind.NETWORK,
                f"Carrier tour service returned HTTP {response.status_code}: {_snippet(response.text)}",
            )

        try:
            manifest = parse_manifest(decode_tournee_body(response.text))
        except ValueError as exc:
            raise FetchError(FetchErrorKind.MALFORMED_RESPONSE, f"Unreadable tour response: {exc}") from exc

        logger.info(f"Tour for {matricule} contains {len(manifest)} packages")
        return manifest

    async def fetch_detail(self, reference: str, token: SessionToken) -> DetailResult:
        """Look up one package; failures are returned, never raised."""
        url = f"{self.detail_url}{DETAIL_PATH.format(reference=reference)}"
        headers = {**BROWSER_HEADERS, TOKEN_HEADER: token.value, "Cache-Control": "no-cache", "Pragma": "no-cache"}
        headers.pop("Content-Type")
        try:
            response = await self.http.post(url, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            return DetailResult.failed(reference, f"network error: {exc}")

        if not response.is_success:
            return DetailResult.failed(reference, f"HTTP {response.status_code}")
        try:
            detail = parse_detail(reference, response.json())
        except (TypeError, ValueError) as exc:
            return DetailResult.failed(reference, f"invalid detail response: {exc}")
        return DetailResult.succeeded(reference, detail)

    async def fetch_details(
        self,
        references: Iterable[str],
        token: SessionToken,
        into: MutableMapping[str, DetailResult] | None = None,
    ) -> dict[str, DetailResult]:
        """Fetch details for every reference, batch by batch.

        Returns exactly one result per distinct reference. Results are also
        written to ``into`` as each batch completes, so a caller that abandons
        the call still keeps what already arrived.
        """
        ordered = list(dict.fromkeys(references))
        results: MutableMapping[str, DetailResult] = into if into is not None else {}

        if self.detail_cache is not None:
            for reference, detail in self.detail_cache.get_many(ordered).items():
                results[reference] = DetailResult.succeeded(reference, detail, from_cache=True)

        pending = [reference for reference in ordered if reference not in results]
        if token.is_expired():
            for reference in pending:
                results[reference] = DetailResult.failed(reference, "session token expired")
            pending = []

        batches = [pending[i : i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        if batches:
            logger.info(
                f"Fetching {len(pending)} package details in {len(batches)} batches "
                f"({len(ordered) - len(pending)} served from cache)"
            )

        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)
            outcomes = await asyncio.gather(*(self.fetch_detail(reference, token) for reference in batch))
            for outcome in outcomes:
                results[outcome.reference] = outcome
                if outcome.ok and self.detail_cache is not None:
                    self.detail_cache.set(outcome.reference, outcome.detail)

        failed = sum(1 for reference in ordered if not results[reference].ok)
        if failed:
            logger.warning(f"Detail lookup failed for {failed}/{len(ordered)} packages")
        return {reference: results[reference] for reference in ordered}

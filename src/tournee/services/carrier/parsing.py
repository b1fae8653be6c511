"""Translate raw carrier JSON into manifest entries and package details."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Optional

from ...models.domain import DetailEvent, PackageDetail, PackageManifestEntry

logger = logging.getLogger(__name__)

DELIVERY_METIER = "COLIS"


def decode_tournee_body(text: str) -> Any:
    """Decode a tour response body.

    The carrier answers either with a JSON object or with a JSON string whose
    content is base64-encoded JSON. Raises ``ValueError`` when neither works.
    """
    payload = json.loads(text)
    if not isinstance(payload, str):
        return payload

    try:
        decoded = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.debug("Tour response string is not base64, trying it as embedded JSON")
        decoded = payload
    return json.loads(decoded)


def _first(raw: dict, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(raw: dict, *keys: str) -> Optional[str]:
    value = _first(raw, *keys)
    if value is None:
        return None
    return str(value).strip() or None


def _coordinate(raw: dict, *keys: str) -> Optional[float]:
    value = _first(raw, *keys)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # The carrier uses 0 for "not geocoded".
    if number == 0.0:
        return None
    return number


def _integer(raw: dict, *keys: str) -> Optional[int]:
    value = _first(raw, *keys)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_manifest_entry(raw: dict) -> Optional[PackageManifestEntry]:
    reference = _text(raw, "refExterneArticle", "RefExterneArticle", "idArticle", "IdArticle")
    if reference is None:
        logger.warning(f"Skipping tour article without reference: keys={sorted(raw.keys())[:10]}")
        return None

    address_lines = tuple(
        line
        for line in (
            _text(raw, "LibelleVoieOrigineDestinataire", "libelleVoieOrigineDestinataire"),
            _text(raw, "complementAdresse1OrigineDestinataire", "ComplementAdresse1OrigineDestinataire"),
        )
        if line
    )
    latitude = _coordinate(raw, "coordYDestinataire", "CoordYDestinataire", "coordYLivraison")
    longitude = _coordinate(raw, "coordXDestinataire", "CoordXDestinataire", "coordXLivraison")
    if latitude is None or longitude is None:
        latitude = longitude = None

    return PackageManifestEntry(
        reference=reference,
        recipient_name=_text(raw, "nomDestinataire", "NomDestinataire") or "",
        address_lines=address_lines,
        postal_code=_text(raw, "codePostalOrigineDestinataire", "CodePostalOrigineDestinataire"),
        city=_text(raw, "LibelleLocaliteOrigineDestinataire", "libelleLocaliteOrigineDestinataire"),
        latitude=latitude,
        longitude=longitude,
        status=_text(raw, "codeStatutArticle", "CodeStatutArticle"),
        sequence_hint=_integer(raw, "numOrdrePassagePrevu", "NumOrdrePassagePrevu"),
        phone=_text(raw, "telephoneMobileDestinataire", "telephoneFixeDestinataire"),
        instructions=_text(raw, "PreferenceLivraison", "preferenceLivraison"),
        raw=raw,
    )


def parse_manifest(payload: Any) -> list[PackageManifestEntry]:
    """Extract delivery parcels from a decoded tour response."""
    if payload is None:
        return []
    if not isinstance(payload, dict):
        raise ValueError(f"Tour response must be a JSON object, got {type(payload).__name__}.")

    articles = payload.get("LstLieuArticle")
    if articles is None:
        logger.info("Tour response has no LstLieuArticle, treating as empty tour")
        return []
    if not isinstance(articles, list):
        raise ValueError("LstLieuArticle must be a list.")

    entries: list[PackageManifestEntry] = []
    seen: set[str] = set()
    for raw in articles:
        if not isinstance(raw, dict):
            continue
        if raw.get("metier") != DELIVERY_METIER:
            continue
        entry = parse_manifest_entry(raw)
        if entry is None:
            continue
        if entry.reference in seen:
            logger.warning(f"Duplicate package reference {entry.reference} in tour, keeping first")
            continue
        seen.add(entry.reference)
        entries.append(entry)
    return entries


def _float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def parse_detail(reference: str, payload: Any) -> PackageDetail:
    """Build a ``PackageDetail`` from a ``{success, data, message}`` envelope.

    Raises ``ValueError`` with the carrier message when the lookup was refused,
    and when ``historique`` is present but not a list.
    """
    if not isinstance(payload, dict):
        raise ValueError("Detail response must be a JSON object.")
    if not payload.get("success"):
        raise ValueError(payload.get("message") or "carrier reported failure")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValueError("Detail response has no data.")

    coordinates = _section(data, "coordonnees")
    physical = _section(data, "donnees_physiques")
    dimensions_raw = _section(physical, "dimensions")
    window = _section(data, "horaires_livraison")
    contact = _section(data, "contact")

    dimensions = {
        name: number
        for name, number in (
            ("length", _float(dimensions_raw.get("longueur"))),
            ("width", _float(dimensions_raw.get("largeur"))),
            ("height", _float(dimensions_raw.get("hauteur"))),
        )
        if number is not None
    }
    contact_name = " ".join(part for part in (_string(contact.get("prenom")), _string(contact.get("nom"))) if part) or None

    history_raw = data.get("historique")
    if history_raw is None:
        history_raw = []
    if not isinstance(history_raw, list):
        raise ValueError(f"historique must be a list, got {type(history_raw).__name__}.")

    history = [
        DetailEvent(
            date=_string(item.get("date")),
            time=_string(item.get("heure")),
            status=_string(item.get("statut")),
            description=_string(item.get("description")),
            place=_string(item.get("lieu")),
        )
        for item in history_raw
        if isinstance(item, dict)
    ]

    return PackageDetail(
        reference=_string(data.get("ref_colis")) or reference,
        full_address=_string(data.get("adresse_complete")),
        barcode=_string(data.get("code_barre_complet")),
        postal_code=_string(data.get("code_postal")),
        city=_string(data.get("ville")),
        country=_string(data.get("pays")),
        latitude=_float(coordinates.get("latitude")),
        longitude=_float(coordinates.get("longitude")),
        weight=_float(physical.get("poids")),
        weight_unit=_string(physical.get("unite_poids")),
        dimensions=dimensions or None,
        delivery_window_start=_string(window.get("debut")),
        delivery_window_end=_string(window.get("fin")),
        contact_name=contact_name,
        contact_phone=_string(contact.get("telephone")),
        contact_email=_string(contact.get("email")),
        instructions=_string(data.get("instructions_livraison")),
        history=history,
    )

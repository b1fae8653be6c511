"""Session token extraction from carrier login responses.

The carrier has shipped two response shapes for the ``SsoHopps`` token. Each
shape is handled by one strategy; strategies are tried in order and the first
non-empty token wins.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

TokenStrategy = Callable[[Any], Optional[str]]


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def token_from_tokens_block(payload: Any) -> Optional[str]:
    """``{"tokens": {"SsoHopps": "<token>"}}``"""
    if not isinstance(payload, dict):
        return None
    tokens = payload.get("tokens")
    if not isinstance(tokens, dict):
        return None
    return _non_empty(tokens.get("SsoHopps"))


def token_from_habilitation(payload: Any) -> Optional[str]:
    """``{"habilitationAD": {"SsoHopps": [{"valeur": "<token>"}]}}``"""
    if not isinstance(payload, dict):
        return None
    habilitation = payload.get("habilitationAD")
    if not isinstance(habilitation, dict):
        return None
    entries = habilitation.get("SsoHopps")
    if not isinstance(entries, list) or not entries:
        return None
    first = entries[0]
    if not isinstance(first, dict):
        return None
    return _non_empty(first.get("valeur"))


TOKEN_STRATEGIES: tuple[tuple[str, TokenStrategy], ...] = (
    ("tokens.SsoHopps", token_from_tokens_block),
    ("habilitationAD.SsoHopps[0].valeur", token_from_habilitation),
)


def extract_token(
    payload: Any,
    strategies: Sequence[tuple[str, TokenStrategy]] = TOKEN_STRATEGIES,
) -> tuple[str, str] | None:
    """Return ``(token, path)`` from the first strategy that finds one."""
    for path, strategy in strategies:
        token = strategy(payload)
        if token:
            return token, path
    return None

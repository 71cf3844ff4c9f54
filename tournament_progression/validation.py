from __future__ import annotations

import re

from .models import ROUND_NAMES


class InvalidValueError(ValueError):
    """Base exception for validation failures."""


_TOURNAMENT_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*$")
_MATCH_CODE_PATTERN = re.compile(r"M(\d+)$")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_tournament_id(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise InvalidValueError("Tournament id cannot be empty")
    if len(value) > 50:
        raise InvalidValueError("Tournament id must be 50 characters or fewer")
    if not _TOURNAMENT_ID_PATTERN.match(value):
        raise InvalidValueError(f"Invalid tournament id: {value}")
    return value


def normalize_match_code(raw: str) -> str:
    value = (raw or "").strip().upper()
    if not value:
        raise InvalidValueError("Match code cannot be empty")
    if not value.startswith("M"):
        value = "M" + value
    if not _MATCH_CODE_PATTERN.match(value):
        raise InvalidValueError(f"Invalid match code: {raw}")
    return value


def normalize_player_name(raw: str) -> str:
    name = _WHITESPACE_PATTERN.sub(" ", (raw or "").strip())
    if not name:
        raise InvalidValueError("Player name cannot be empty")
    if len(name) > 100:
        raise InvalidValueError("Player name must be 100 characters or fewer")
    return name


def validate_admin_user(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise InvalidValueError("An acting admin is required")
    return value


def validate_round_name(raw: str) -> str:
    value = (raw or "").strip()
    if value not in ROUND_NAMES:
        raise InvalidValueError(f"Unknown round: {raw}")
    return value


__all__ = [
    "InvalidValueError",
    "normalize_tournament_id",
    "normalize_match_code",
    "normalize_player_name",
    "validate_admin_user",
    "validate_round_name",
]

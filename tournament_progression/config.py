"""Configuration helpers for the progression service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import boto3

from .service import ProgressionService
from .storage import TournamentStorage

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class ProgressionSettings:
    table_name: str | None
    aws_region: str
    audit_enabled: bool
    slot_claim_attempts: int
    log_level: str


def read_settings() -> ProgressionSettings:
    attempts = env_int("SLOT_CLAIM_ATTEMPTS", default=3) or 3
    return ProgressionSettings(
        table_name=os.getenv("TOURNAMENT_TABLE_NAME") or None,
        aws_region=os.getenv("AWS_REGION", "us-east-1"),
        audit_enabled=env_bool("TOURNAMENT_AUDIT_ENABLED", default=True),
        slot_claim_attempts=max(1, attempts),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT
    )


def create_table(settings: ProgressionSettings):
    if not settings.table_name:
        raise RuntimeError("TOURNAMENT_TABLE_NAME is not configured")
    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)
    return dynamodb.Table(settings.table_name)


def build_service(settings: ProgressionSettings | None = None) -> ProgressionService:
    settings = settings or read_settings()
    storage = TournamentStorage(create_table(settings))
    return ProgressionService(
        storage,
        audit_enabled=settings.audit_enabled,
        slot_claim_attempts=settings.slot_claim_attempts,
    )


__all__ = [
    "LOG_FORMAT",
    "ProgressionSettings",
    "build_service",
    "configure_logging",
    "create_table",
    "env_bool",
    "env_int",
    "read_settings",
]

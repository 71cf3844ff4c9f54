from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotFoundError, PersistenceFailureError, SlotConflictError
from .models import (
    AuditEntry,
    BracketProgression,
    Registration,
    SlotClaim,
    Tournament,
    utc_now_iso,
)

_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


class TournamentStorage:
    """Single-table DynamoDB adapter for tournaments and their bracket state."""

    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Tournament table is not configured")

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        self.ensure_table()
        try:
            return getattr(self._table, operation)(**kwargs) or {}
        except ClientError as exc:
            if _error_code(exc) == _CONDITIONAL_CHECK_FAILED:
                raise
            raise PersistenceFailureError(f"{operation} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise PersistenceFailureError(f"{operation} failed: {exc}") from exc

    def _query_prefix(self, pk_value: str, sk_prefix: str) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": Key("pk").eq(pk_value)
            & Key("sk").begins_with(sk_prefix),
            "Select": "ALL_ATTRIBUTES",
        }
        items: list[dict[str, Any]] = []
        while True:
            resp = self._call("query", **kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items

    # ----- Tournaments -----
    def get_tournament(self, tournament_id: str) -> Tournament | None:
        resp = self._call("get_item", Key=Tournament.key(tournament_id))
        item = resp.get("Item")
        if not item:
            return None
        return Tournament.from_item(item)

    def save_tournament(self, tournament: Tournament) -> None:
        tournament.updated_at = utc_now_iso()
        self._call("put_item", Item=tournament.to_item())

    def update_tournament_fields(self, tournament_id: str, **fields: object) -> None:
        """Overwrite selected top-level attributes of an existing tournament."""
        if not fields:
            return
        fields.setdefault("updated_at", utc_now_iso())
        names: dict[str, str] = {}
        values: dict[str, object] = {}
        assignments: list[str] = []
        for index, (name, value) in enumerate(fields.items()):
            names[f"#f{index}"] = name
            values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")
        try:
            self._call(
                "update_item",
                Key=Tournament.key(tournament_id),
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression="attribute_exists(pk)",
            )
        except ClientError as exc:
            raise NotFoundError(f"Tournament {tournament_id} not found") from exc

    # ----- Registrations -----
    def list_registrations(self, tournament_id: str) -> list[Registration]:
        items = self._query_prefix(
            Registration.PK_TEMPLATE % tournament_id, Registration.SK_PREFIX
        )
        registrations = [Registration.from_item(item) for item in items]
        registrations.sort(key=lambda entry: (entry.created_at, entry.registration_id))
        return registrations

    def claim_slot(self, claim: SlotClaim) -> None:
        try:
            self._call(
                "put_item",
                Item=claim.to_item(),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as exc:
            raise SlotConflictError(claim.tournament_id, claim.slot_number) from exc

    def release_slot(self, tournament_id: str, slot_number: int) -> None:
        try:
            self._call(
                "delete_item",
                Key=SlotClaim.key(tournament_id, slot_number),
                ConditionExpression="attribute_exists(pk)",
            )
        except ClientError:
            return

    def append_registration(self, registration: Registration) -> None:
        """Persist a registration, claiming its slot atomically first."""
        if registration.slot_number is not None:
            self.claim_slot(
                SlotClaim(
                    tournament_id=registration.tournament_id,
                    slot_number=registration.slot_number,
                    registration_id=registration.registration_id,
                    claimed_at=registration.created_at,
                )
            )
        try:
            self._call(
                "put_item",
                Item=registration.to_item(),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except (ClientError, PersistenceFailureError) as exc:
            if registration.slot_number is not None:
                self.release_slot(registration.tournament_id, registration.slot_number)
            if isinstance(exc, ClientError):
                raise PersistenceFailureError(
                    f"Registration {registration.registration_id} already exists"
                ) from exc
            raise

    def delete_registration(
        self, tournament_id: str, registration_id: str
    ) -> Registration | None:
        key = Registration.key(tournament_id, registration_id)
        item = self._call("get_item", Key=key).get("Item")
        if not item:
            return None
        registration = Registration.from_item(item)
        try:
            self._call(
                "delete_item",
                Key=key,
                ConditionExpression="attribute_exists(pk)",
            )
        except ClientError:  # pragma: no cover - concurrent delete
            return None
        if registration.slot_number is not None:
            self.release_slot(tournament_id, registration.slot_number)
        return registration

    # ----- Progression -----
    def get_progression(self, tournament_id: str) -> BracketProgression | None:
        resp = self._call("get_item", Key=BracketProgression.key(tournament_id))
        item = resp.get("Item")
        if not item:
            return None
        return BracketProgression.from_item(item)

    def save_progression(self, progression: BracketProgression) -> None:
        self._call("put_item", Item=progression.to_item())

    def delete_progression(self, tournament_id: str) -> bool:
        try:
            self._call(
                "delete_item",
                Key=BracketProgression.key(tournament_id),
                ConditionExpression="attribute_exists(pk)",
            )
        except ClientError:
            return False
        return True

    # ----- Audit -----
    def append_audit(self, entry: AuditEntry) -> None:
        self._call("put_item", Item=entry.to_item())

    def list_audit(self, tournament_id: str) -> list[AuditEntry]:
        items = self._query_prefix(
            AuditEntry.PK_TEMPLATE % tournament_id, AuditEntry.SK_PREFIX
        )
        return [AuditEntry.from_item(item) for item in items]


__all__ = ["TournamentStorage"]

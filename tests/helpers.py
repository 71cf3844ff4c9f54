from __future__ import annotations

import copy
import random
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from botocore.exceptions import ClientError

from tournament_progression import Registration, Tournament, TournamentStorage
from tournament_progression.bracket import (
    advance_round,
    record_winner,
    seed_round_of_32,
)
from tournament_progression.models import (
    ISO_FORMAT,
    QUARTERFINAL,
    ROUND_OF_16,
    ROUND_OF_32,
    SEMIFINAL,
    MatchSlot,
)


def _conditional_failure(operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {
                "Code": "ConditionalCheckFailedException",
                "Message": "The conditional request failed",
            }
        },
        operation,
    )


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB ``Table`` resource."""

    def __init__(self, *, page_size: int | None = None) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}
        self.page_size = page_size
        self.query_calls = 0

    @staticmethod
    def _check(condition: str | None, exists: bool, operation: str) -> None:
        if condition == "attribute_not_exists(pk)" and exists:
            raise _conditional_failure(operation)
        if condition == "attribute_exists(pk)" and not exists:
            raise _conditional_failure(operation)

    def get_item(self, *, Key):
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def put_item(self, *, Item, ConditionExpression=None):
        key = (Item["pk"], Item["sk"])
        self._check(ConditionExpression, key in self.items, "PutItem")
        self.items[key] = copy.deepcopy(Item)

    def update_item(
        self,
        *,
        Key,
        UpdateExpression,
        ExpressionAttributeNames,
        ExpressionAttributeValues,
        ConditionExpression=None,
    ):
        key = (Key["pk"], Key["sk"])
        self._check(ConditionExpression, key in self.items, "UpdateItem")
        item = self.items.setdefault(key, dict(Key))
        assignments = UpdateExpression.removeprefix("SET ").split(", ")
        for assignment in assignments:
            name_ref, value_ref = (part.strip() for part in assignment.split("="))
            item[ExpressionAttributeNames[name_ref]] = copy.deepcopy(
                ExpressionAttributeValues[value_ref]
            )

    def delete_item(self, *, Key, ConditionExpression=None):
        key = (Key["pk"], Key["sk"])
        self._check(ConditionExpression, key in self.items, "DeleteItem")
        self.items.pop(key, None)

    def query(
        self,
        *,
        KeyConditionExpression,
        Select="ALL_ATTRIBUTES",
        ExclusiveStartKey=None,
        **_kwargs,
    ):
        self.query_calls += 1
        pk_value = None
        sk_prefix = ""
        for condition in KeyConditionExpression._values:  # type: ignore[attr-defined]
            key, value = condition._values  # type: ignore[attr-defined]
            if key.name == "pk":  # pragma: no branch - helper
                pk_value = value
            elif key.name == "sk":
                sk_prefix = value
        matching_keys = [
            key
            for key in sorted(self.items)
            if key[0] == pk_value and key[1].startswith(sk_prefix)
        ]
        if ExclusiveStartKey is not None:
            start = (ExclusiveStartKey["pk"], ExclusiveStartKey["sk"])
            matching_keys = [key for key in matching_keys if key > start]
        response: dict[str, object] = {}
        if self.page_size is not None and len(matching_keys) > self.page_size:
            matching_keys = matching_keys[: self.page_size]
            last = matching_keys[-1]
            response["LastEvaluatedKey"] = {"pk": last[0], "sk": last[1]}
        items = [copy.deepcopy(self.items[key]) for key in matching_keys]
        if Select == "COUNT":
            response["Count"] = len(items)
            return response
        response.update({"Items": items, "Count": len(items)})
        return response


class ScriptedRandom(random.Random):
    """Random source whose ``choice`` follows a fixed script."""

    def __init__(self, script: Sequence[int]) -> None:
        super().__init__(0)
        self.script = list(script)

    def choice(self, seq):
        value = self.script.pop(0)
        assert value in seq, f"{value} is not available in {list(seq)}"
        return value


def player_name(slot: int) -> str:
    return f"Player {slot:02d}"


def make_registration(
    tournament_id: str,
    slot: int | None,
    offset_seconds: int,
    *,
    name: str | None = None,
) -> Registration:
    created_at = (
        datetime.fromisoformat("2024-01-01T00:00:00+00:00")
        + timedelta(seconds=offset_seconds)
    ).strftime(ISO_FORMAT)
    return Registration(
        registration_id=f"REG-{offset_seconds:04d}",
        tournament_id=tournament_id,
        full_name=name or player_name(slot or offset_seconds),
        created_at=created_at,
        slot_number=slot,
    )


def make_registrations(
    tournament_id: str = "T1", count: int = 32
) -> list[Registration]:
    # created_at order deliberately differs from slot order
    return [
        make_registration(tournament_id, slot, offset_seconds=count - slot)
        for slot in range(1, count + 1)
    ]


def seed_tournament(
    storage: TournamentStorage,
    tournament_id: str = "T1",
    *,
    registrations: int = 32,
    status: str = "Upcoming",
) -> Tournament:
    tournament = Tournament(
        tournament_id=tournament_id,
        name=f"Cup {tournament_id}",
        status=status,
        date="2024-02-03",
    )
    storage.save_tournament(tournament)
    for registration in make_registrations(tournament_id, registrations):
        storage.append_registration(registration)
    return tournament


def first_player(match: MatchSlot) -> str:
    return match.players[0]


def decide_matches(
    tournament: Tournament,
    round_name: str,
    chooser: Callable[[MatchSlot], str] = first_player,
) -> list[str]:
    winners: list[str] = []
    for match in tournament.matches_in_round(round_name):
        winner = chooser(match)
        record_winner(match, winner, "admin")
        winners.append(winner)
    return winners


def decide_round(
    service,
    tournament_id: str,
    round_name: str,
    chooser: Callable[[MatchSlot], str] = first_player,
) -> list[str]:
    winners: list[str] = []
    for match in service.get_matches_by_round(tournament_id, round_name):
        winner = chooser(match)
        result = service.record_match_winner(tournament_id, match.code, winner, "admin")
        assert result.success, result.message
        winners.append(winner)
    return winners


def bracket_tournament(count: int = 32, tournament_id: str = "T1") -> Tournament:
    tournament = Tournament(tournament_id=tournament_id, name="Cup", date="2024-02-03")
    tournament.schedule = seed_round_of_32(
        make_registrations(tournament_id, count), date="2024-02-03"
    )
    return tournament


def play_through(tournament: Tournament, last_source_round: str) -> None:
    """Decide and advance every round up to and including ``last_source_round``."""
    for round_name in (ROUND_OF_32, ROUND_OF_16, QUARTERFINAL, SEMIFINAL):
        decide_matches(tournament, round_name)
        advance_round(tournament, round_name)
        if round_name == last_source_round:
            return

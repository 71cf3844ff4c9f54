from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar, Final, Literal

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

TOURNAMENT_CAPACITY: Final = 32

ROUND_OF_32: Final = "Round of 32"
ROUND_OF_16: Final = "Round of 16"
QUARTERFINAL: Final = "Quarterfinal"
SEMIFINAL: Final = "Semifinal"
THIRD_PLACE_MATCH: Final = "3rd Place Match"
FINAL: Final = "Final"

TournamentStatus = Literal["Upcoming", "Ongoing", "Completed", "Cancelled"]
STATUS_UPCOMING: Final = "Upcoming"
STATUS_COMPLETED: Final = "Completed"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format (ms precision)."""
    return datetime.now(UTC).strftime(ISO_FORMAT)


@dataclass(frozen=True, slots=True)
class RoundDefinition:
    name: str
    order: int
    max_matches: int


ROUND_DEFINITIONS: Final = (
    RoundDefinition(ROUND_OF_32, 1, 16),
    RoundDefinition(ROUND_OF_16, 2, 8),
    RoundDefinition(QUARTERFINAL, 3, 4),
    RoundDefinition(SEMIFINAL, 4, 2),
    RoundDefinition(THIRD_PLACE_MATCH, 5, 1),
    RoundDefinition(FINAL, 6, 1),
)
ROUND_NAMES: Final = tuple(definition.name for definition in ROUND_DEFINITIONS)
MATCHES_PER_ROUND: Final = {
    definition.name: definition.max_matches for definition in ROUND_DEFINITIONS
}


def _optional_str(value: object) -> str | None:
    return str(value) if value not in (None, "") else None


def _optional_int(value: object) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):  # pragma: no cover
        return None


@dataclass(slots=True)
class MatchSide:
    """One side of a match: a named player or a pending "winner of" reference."""

    name: str | None = None
    source_code: str | None = None

    @classmethod
    def player(cls, name: str) -> MatchSide:
        return cls(name=name)

    @classmethod
    def winner_of(cls, code: str) -> MatchSide:
        return cls(source_code=code)

    @property
    def is_resolved(self) -> bool:
        return bool(self.name)

    def display(self) -> str:
        if self.name:
            return self.name
        if self.source_code:
            return f"Winner of {self.source_code}"
        return "TBD"

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {}
        if self.name is not None:
            data["name"] = self.name
        if self.source_code is not None:
            data["source_code"] = self.source_code
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> MatchSide:
        return cls(
            name=_optional_str(data.get("name")),
            source_code=_optional_str(data.get("source_code")),
        )


@dataclass(slots=True)
class MatchSlot:
    code: str
    sequence: int
    round_name: str
    side_one: MatchSide
    side_two: MatchSide
    date: str = ""
    winner: str | None = None
    is_completed: bool = False
    completed_at: str | None = None
    completed_by: str | None = None

    @property
    def players(self) -> tuple[str, ...]:
        return tuple(
            side.name for side in (self.side_one, self.side_two) if side.name
        )

    @property
    def is_decided(self) -> bool:
        return self.is_completed and bool(self.winner)

    def players_label(self) -> str:
        return f"{self.side_one.display()} vs {self.side_two.display()}"

    def has_player(self, name: str) -> bool:
        return name in self.players

    def loser(self) -> str | None:
        if not self.winner:
            return None
        for name in self.players:
            if name != self.winner:
                return name
        return None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "code": self.code,
            "sequence": self.sequence,
            "round": self.round_name,
            "side_one": self.side_one.to_dict(),
            "side_two": self.side_two.to_dict(),
            "date": self.date,
            "is_completed": self.is_completed,
        }
        if self.winner is not None:
            data["winner"] = self.winner
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at
        if self.completed_by is not None:
            data["completed_by"] = self.completed_by
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> MatchSlot:
        return cls(
            code=str(data.get("code", "")),
            sequence=int(data.get("sequence", 0)),  # type: ignore[arg-type]
            round_name=str(data.get("round", "")),
            side_one=MatchSide.from_dict(data.get("side_one", {})),  # type: ignore[arg-type]
            side_two=MatchSide.from_dict(data.get("side_two", {})),  # type: ignore[arg-type]
            date=str(data.get("date", "") or ""),
            winner=_optional_str(data.get("winner")),
            is_completed=bool(data.get("is_completed", False)),
            completed_at=_optional_str(data.get("completed_at")),
            completed_by=_optional_str(data.get("completed_by")),
        )


@dataclass(slots=True)
class Tournament:
    tournament_id: str
    name: str
    status: TournamentStatus = STATUS_UPCOMING
    schedule: list[MatchSlot] = field(default_factory=list)
    capacity: int = TOURNAMENT_CAPACITY
    date: str | None = None
    completed_at: str | None = None
    completed_by: str | None = None
    updated_at: str = ""

    PK_TEMPLATE: ClassVar[str] = "TOURNAMENT#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, tournament_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % tournament_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.tournament_id)
        item.update(
            {
                "tournament_id": self.tournament_id,
                "name": self.name,
                "status": self.status,
                "capacity": self.capacity,
                "schedule": [match.to_dict() for match in self.schedule],
                "updated_at": self.updated_at,
            }
        )
        if self.date is not None:
            item["date"] = self.date
        if self.completed_at is not None:
            item["completed_at"] = self.completed_at
        if self.completed_by is not None:
            item["completed_by"] = self.completed_by
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Tournament:
        tournament_id = str(
            item.get("tournament_id") or str(item["pk"]).split("#", 1)[1]
        )
        schedule_data: Iterable[dict[str, object]] = item.get("schedule", [])  # type: ignore[assignment]
        return cls(
            tournament_id=tournament_id,
            name=str(item.get("name", "")),
            status=str(item.get("status", STATUS_UPCOMING)),  # type: ignore[arg-type]
            schedule=[MatchSlot.from_dict(entry) for entry in schedule_data],
            capacity=int(item.get("capacity", TOURNAMENT_CAPACITY)),  # type: ignore[arg-type]
            date=_optional_str(item.get("date")),
            completed_at=_optional_str(item.get("completed_at")),
            completed_by=_optional_str(item.get("completed_by")),
            updated_at=str(item.get("updated_at", "")),
        )

    def clone(self) -> Tournament:
        return Tournament.from_item(self.to_item())

    def matches_in_round(self, round_name: str) -> list[MatchSlot]:
        matches = [match for match in self.schedule if match.round_name == round_name]
        matches.sort(key=lambda match: match.sequence)
        return matches

    def find_match(self, code: str) -> MatchSlot | None:
        for match in self.schedule:
            if match.code == code:
                return match
        return None

    def replace_rounds(
        self, round_names: Iterable[str], matches: Iterable[MatchSlot]
    ) -> None:
        dropped = set(round_names)
        self.schedule = [
            match for match in self.schedule if match.round_name not in dropped
        ]
        self.schedule.extend(matches)


@dataclass(slots=True)
class Registration:
    registration_id: str
    tournament_id: str
    full_name: str
    created_at: str
    slot_number: int | None = None
    round_label: str | None = None
    round_index: int | None = None

    PK_TEMPLATE: ClassVar[str] = "TOURNAMENT#%s"
    SK_TEMPLATE: ClassVar[str] = "REGISTRATION#%s"
    SK_PREFIX: ClassVar[str] = "REGISTRATION#"

    @classmethod
    def key(cls, tournament_id: str, registration_id: str) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % tournament_id,
            "sk": cls.SK_TEMPLATE % registration_id,
        }

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.tournament_id, self.registration_id)
        item.update(
            {
                "registration_id": self.registration_id,
                "tournament_id": self.tournament_id,
                "full_name": self.full_name,
                "created_at": self.created_at,
            }
        )
        if self.slot_number is not None:
            item["slot_number"] = self.slot_number
        if self.round_label is not None:
            item["round_label"] = self.round_label
        if self.round_index is not None:
            item["round_index"] = self.round_index
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Registration:
        sk_value = str(item.get("sk", ""))
        registration_id = str(
            item.get("registration_id") or sk_value.split("#", 1)[-1]
        )
        tournament_id = str(
            item.get("tournament_id") or str(item["pk"]).split("#", 1)[1]
        )
        return cls(
            registration_id=registration_id,
            tournament_id=tournament_id,
            full_name=str(item.get("full_name", "")),
            created_at=str(item.get("created_at", "")),
            slot_number=_optional_int(item.get("slot_number")),
            round_label=_optional_str(item.get("round_label")),
            round_index=_optional_int(item.get("round_index")),
        )


@dataclass(slots=True)
class SlotClaim:
    tournament_id: str
    slot_number: int
    registration_id: str
    claimed_at: str

    PK_TEMPLATE: ClassVar[str] = "TOURNAMENT#%s"
    SK_TEMPLATE: ClassVar[str] = "SLOT#%02d"

    @classmethod
    def key(cls, tournament_id: str, slot_number: int) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % tournament_id,
            "sk": cls.SK_TEMPLATE % slot_number,
        }

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.tournament_id, self.slot_number)
        item.update(
            {
                "slot_number": self.slot_number,
                "registration_id": self.registration_id,
                "claimed_at": self.claimed_at,
            }
        )
        return item


@dataclass(slots=True)
class RoundState:
    name: str
    order: int
    max_matches: int
    is_completed: bool = False
    completed_at: str | None = None
    completed_by: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "name": self.name,
            "order": self.order,
            "max_matches": self.max_matches,
            "is_completed": self.is_completed,
        }
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at
        if self.completed_by is not None:
            data["completed_by"] = self.completed_by
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> RoundState:
        return cls(
            name=str(data.get("name", "")),
            order=int(data.get("order", 0)),  # type: ignore[arg-type]
            max_matches=int(data.get("max_matches", 0)),  # type: ignore[arg-type]
            is_completed=bool(data.get("is_completed", False)),
            completed_at=_optional_str(data.get("completed_at")),
            completed_by=_optional_str(data.get("completed_by")),
        )

    def mark_completed(self, admin_user: str) -> None:
        self.is_completed = True
        self.completed_at = utc_now_iso()
        self.completed_by = admin_user

    def reset(self) -> None:
        self.is_completed = False
        self.completed_at = None
        self.completed_by = None


@dataclass(slots=True)
class BracketProgression:
    tournament_id: str
    current_round: str
    rounds: list[RoundState]
    last_updated: str
    last_updated_by: str

    PK_TEMPLATE: ClassVar[str] = "TOURNAMENT#%s"
    SK_VALUE: ClassVar[str] = "PROGRESSION"

    @classmethod
    def key(cls, tournament_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % tournament_id, "sk": cls.SK_VALUE}

    @classmethod
    def initial(cls, tournament_id: str, admin_user: str) -> BracketProgression:
        return cls(
            tournament_id=tournament_id,
            current_round=ROUND_OF_32,
            rounds=[
                RoundState(
                    name=definition.name,
                    order=definition.order,
                    max_matches=definition.max_matches,
                )
                for definition in ROUND_DEFINITIONS
            ],
            last_updated=utc_now_iso(),
            last_updated_by=admin_user,
        )

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.tournament_id)
        item.update(
            {
                "tournament_id": self.tournament_id,
                "current_round": self.current_round,
                "rounds": [round_.to_dict() for round_ in self.rounds],
                "last_updated": self.last_updated,
                "last_updated_by": self.last_updated_by,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> BracketProgression:
        tournament_id = str(
            item.get("tournament_id") or str(item["pk"]).split("#", 1)[1]
        )
        rounds_data: Iterable[dict[str, object]] = item.get("rounds", [])  # type: ignore[assignment]
        rounds = [RoundState.from_dict(entry) for entry in rounds_data]
        rounds.sort(key=lambda round_: round_.order)
        return cls(
            tournament_id=tournament_id,
            current_round=str(item.get("current_round", ROUND_OF_32)),
            rounds=rounds,
            last_updated=str(item.get("last_updated", "")),
            last_updated_by=str(item.get("last_updated_by", "")),
        )

    def find_round(self, name: str) -> RoundState | None:
        for round_ in self.rounds:
            if round_.name == name:
                return round_
        return None

    def touch(self, admin_user: str) -> None:
        self.last_updated = utc_now_iso()
        self.last_updated_by = admin_user

    def reset(self, admin_user: str) -> None:
        self.current_round = ROUND_OF_32
        for round_ in self.rounds:
            round_.reset()
        self.touch(admin_user)

    def completed_rounds(self) -> list[str]:
        return [round_.name for round_ in self.rounds if round_.is_completed]

    def pending_rounds(self) -> list[str]:
        return [round_.name for round_ in self.rounds if not round_.is_completed]


@dataclass(slots=True)
class AuditEntry:
    tournament_id: str
    action: str
    resource_id: str
    admin_user: str
    timestamp: str
    audit_id: str
    details: dict[str, object] = field(default_factory=dict)

    PK_TEMPLATE: ClassVar[str] = "TOURNAMENT#%s"
    SK_TEMPLATE: ClassVar[str] = "AUDIT#%s#%s"
    SK_PREFIX: ClassVar[str] = "AUDIT#"

    @classmethod
    def key(cls, tournament_id: str, timestamp: str, audit_id: str) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % tournament_id,
            "sk": cls.SK_TEMPLATE % (timestamp, audit_id),
        }

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(
            self.tournament_id, self.timestamp, self.audit_id
        )
        item.update(
            {
                "tournament_id": self.tournament_id,
                "action": self.action,
                "resource_id": self.resource_id,
                "admin_user": self.admin_user,
                "timestamp": self.timestamp,
                "audit_id": self.audit_id,
                "details": dict(self.details),
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> AuditEntry:
        details = item.get("details")
        return cls(
            tournament_id=str(item.get("tournament_id", "")),
            action=str(item.get("action", "")),
            resource_id=str(item.get("resource_id", "")),
            admin_user=str(item.get("admin_user", "")),
            timestamp=str(item.get("timestamp", "")),
            audit_id=str(item.get("audit_id", "")),
            details=dict(details) if isinstance(details, dict) else {},
        )


__all__ = [
    "ISO_FORMAT",
    "TOURNAMENT_CAPACITY",
    "ROUND_OF_32",
    "ROUND_OF_16",
    "QUARTERFINAL",
    "SEMIFINAL",
    "THIRD_PLACE_MATCH",
    "FINAL",
    "ROUND_DEFINITIONS",
    "ROUND_NAMES",
    "MATCHES_PER_ROUND",
    "TournamentStatus",
    "STATUS_UPCOMING",
    "STATUS_COMPLETED",
    "RoundDefinition",
    "MatchSide",
    "MatchSlot",
    "Tournament",
    "Registration",
    "SlotClaim",
    "RoundState",
    "BracketProgression",
    "AuditEntry",
    "utc_now_iso",
]

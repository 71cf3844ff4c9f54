"""Read-only consistency checks over a tournament schedule."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from .bracket import round_matches
from .models import (
    FINAL,
    MATCHES_PER_ROUND,
    QUARTERFINAL,
    ROUND_NAMES,
    ROUND_OF_16,
    ROUND_OF_32,
    SEMIFINAL,
    THIRD_PLACE_MATCH,
    MatchSlot,
)

# (later round, round it must not exist without)
_STRUCTURAL_ORDER = (
    (QUARTERFINAL, ROUND_OF_16),
    (SEMIFINAL, QUARTERFINAL),
    (FINAL, SEMIFINAL),
)

# (round whose players are checked, round that must have produced them)
_LINEAGE_CHECKS = (
    (ROUND_OF_16, ROUND_OF_32),
    (QUARTERFINAL, ROUND_OF_16),
)


@dataclass(slots=True)
class RoundSummary:
    count: int = 0
    completed: int = 0
    winners: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "count": self.count,
            "completed": self.completed,
            "winners": list(self.winners),
        }


@dataclass(slots=True)
class IntegrityReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    round_counts: dict[str, RoundSummary] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "round_counts": {
                name: summary.to_dict() for name, summary in self.round_counts.items()
            },
        }


def summarize_rounds(schedule: Sequence[MatchSlot]) -> dict[str, RoundSummary]:
    summaries: dict[str, RoundSummary] = {}
    for round_name in ROUND_NAMES:
        matches = round_matches(schedule, round_name)
        winners = [match.winner for match in matches if match.is_decided]
        summaries[round_name] = RoundSummary(
            count=len(matches),
            completed=len(winners),
            winners=[winner for winner in winners if winner],
        )
    return summaries


def _check_lineage(
    schedule: Sequence[MatchSlot],
    summaries: dict[str, RoundSummary],
    round_name: str,
    source_round: str,
    report: IntegrityReport,
) -> None:
    matches = round_matches(schedule, round_name)
    source = summaries[source_round]
    if not matches or source.completed != MATCHES_PER_ROUND[source_round]:
        return
    genuine = set(source.winners)
    mismatched: list[str] = []
    for match in matches:
        for name in match.players:
            if name not in genuine and name not in mismatched:
                mismatched.append(name)
    if mismatched:
        report.errors.append(
            f"{round_name} has mismatched winners: {', '.join(mismatched)}"
        )


def validate_integrity(schedule: Sequence[MatchSlot]) -> IntegrityReport:
    """Audit bracket structure and winner lineage without mutating anything."""
    summaries = summarize_rounds(schedule)
    report = IntegrityReport(round_counts=summaries)

    first_round = summaries[ROUND_OF_32]
    expected = MATCHES_PER_ROUND[ROUND_OF_32]
    if first_round.count != expected:
        report.errors.append(
            f"{ROUND_OF_32} should have {expected} matches, found {first_round.count}"
        )
    elif first_round.completed != expected:
        report.errors.append(
            f"{ROUND_OF_32} should have {expected} winners, "
            f"found {first_round.completed}"
        )

    for round_name, source_round in _LINEAGE_CHECKS:
        _check_lineage(schedule, summaries, round_name, source_round, report)

    for round_name, required in _STRUCTURAL_ORDER:
        if summaries[round_name].count and not summaries[required].count:
            report.errors.append(
                f"{round_name} matches exist but {required} is missing - "
                "progression order is corrupted"
            )

    if summaries[THIRD_PLACE_MATCH].count and not summaries[FINAL].count:
        report.warnings.append(f"{THIRD_PLACE_MATCH} exists without a {FINAL}")

    duplicates = [
        code for code, total in Counter(m.code for m in schedule).items() if total > 1
    ]
    if duplicates:
        report.warnings.append(
            f"Duplicate match codes: {', '.join(sorted(duplicates))}"
        )

    for match in schedule:
        if match.winner and not match.has_player(match.winner):
            report.warnings.append(
                f"{match.code} winner {match.winner} is not one of its players"
            )

    return report


__all__ = ["IntegrityReport", "RoundSummary", "summarize_rounds", "validate_integrity"]

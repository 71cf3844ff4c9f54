from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .errors import IncompletePreconditionError, IntegrityViolationError, NotFoundError
from .models import (
    FINAL,
    MATCHES_PER_ROUND,
    QUARTERFINAL,
    ROUND_OF_16,
    ROUND_OF_32,
    SEMIFINAL,
    THIRD_PLACE_MATCH,
    MatchSide,
    MatchSlot,
    Registration,
    Tournament,
    utc_now_iso,
)
from .validation import InvalidValueError

PairingRule = Callable[[Sequence[MatchSlot], int, str], list[MatchSlot]]


def match_code(sequence: int) -> str:
    return f"M{sequence}"


def _build_match(
    sequence: int, round_name: str, side_one: MatchSide, side_two: MatchSide, date: str
) -> MatchSlot:
    return MatchSlot(
        code=match_code(sequence),
        sequence=sequence,
        round_name=round_name,
        side_one=side_one,
        side_two=side_two,
        date=date,
    )


def _registration_sort_key(registration: Registration) -> tuple[bool, int, str, str]:
    slot = registration.slot_number
    return (
        slot is None,
        slot or 0,
        registration.created_at,
        registration.registration_id,
    )


def seed_round_of_32(
    registrations: Sequence[Registration], *, date: str = ""
) -> list[MatchSlot]:
    """Pair registrants by slot: 1 vs 32, 2 vs 31, ... 16 vs 17.

    Registrations without a slot are ordered after slotted ones. Pairings whose
    opponent index is missing (a partial roster) are skipped.
    """
    if not registrations:
        raise IncompletePreconditionError("No registrations to seed Round of 32")
    ordered = sorted(registrations, key=_registration_sort_key)
    match_count = MATCHES_PER_ROUND[ROUND_OF_32]
    field_size = match_count * 2
    matches: list[MatchSlot] = []
    for index in range(match_count):
        opponent_index = field_size - 1 - index
        if opponent_index >= len(ordered):
            continue
        matches.append(
            _build_match(
                index + 1,
                ROUND_OF_32,
                MatchSide.player(ordered[index].full_name),
                MatchSide.player(ordered[opponent_index].full_name),
                date,
            )
        )
    return matches


def _pair_winners(round_name: str) -> PairingRule:
    def rule(
        source: Sequence[MatchSlot], first_sequence: int, date: str
    ) -> list[MatchSlot]:
        winners = [match.winner or "" for match in source]
        return [
            _build_match(
                first_sequence + index,
                round_name,
                MatchSide.player(winners[index * 2]),
                MatchSide.player(winners[index * 2 + 1]),
                date,
            )
            for index in range(len(winners) // 2)
        ]

    return rule


def _final_and_third_place(
    source: Sequence[MatchSlot], first_sequence: int, date: str
) -> list[MatchSlot]:
    winners = [match.winner or "" for match in source]
    losers = [match.loser() for match in source]
    if any(loser is None for loser in losers):
        raise IncompletePreconditionError(
            "Semifinal losers cannot be determined from the recorded winners"
        )
    return [
        _build_match(
            first_sequence,
            FINAL,
            MatchSide.player(winners[0]),
            MatchSide.player(winners[1]),
            date,
        ),
        _build_match(
            first_sequence + 1,
            THIRD_PLACE_MATCH,
            MatchSide.player(losers[0] or ""),
            MatchSide.player(losers[1] or ""),
            date,
        ),
    ]


@dataclass(frozen=True, slots=True)
class RoundTransition:
    source_round: str
    target_rounds: tuple[str, ...]
    expected_source_count: int
    expected_target_count: int
    first_sequence: int
    pairing_rule: PairingRule


TRANSITIONS: dict[str, RoundTransition] = {
    transition.source_round: transition
    for transition in (
        RoundTransition(ROUND_OF_32, (ROUND_OF_16,), 16, 8, 17, _pair_winners(ROUND_OF_16)),
        RoundTransition(ROUND_OF_16, (QUARTERFINAL,), 8, 4, 25, _pair_winners(QUARTERFINAL)),
        RoundTransition(QUARTERFINAL, (SEMIFINAL,), 4, 2, 29, _pair_winners(SEMIFINAL)),
        RoundTransition(SEMIFINAL, (FINAL, THIRD_PLACE_MATCH), 2, 2, 31, _final_and_third_place),
    )
}  # fmt: skip


def next_round_name(round_name: str) -> str | None:
    transition = TRANSITIONS.get(round_name)
    if transition is None:
        return None
    return transition.target_rounds[0]


def round_matches(schedule: Sequence[MatchSlot], round_name: str) -> list[MatchSlot]:
    matches = [match for match in schedule if match.round_name == round_name]
    matches.sort(key=lambda match: match.sequence)
    return matches


def can_publish_round(schedule: Sequence[MatchSlot], round_name: str) -> bool:
    matches = round_matches(schedule, round_name)
    return bool(matches) and all(match.is_decided for match in matches)


def generate_next_round(
    schedule: Sequence[MatchSlot], source_round: str, *, date: str = ""
) -> list[MatchSlot]:
    """Build the matches of the round fed by ``source_round``.

    Winners are taken in match-sequence order, never completion order.
    """
    transition = TRANSITIONS.get(source_round)
    if transition is None:
        raise NotFoundError(f"No round follows {source_round}")
    source = round_matches(schedule, source_round)
    decided = [match for match in source if match.is_decided]
    expected = transition.expected_source_count
    if len(source) != expected or len(decided) != expected:
        raise IncompletePreconditionError(
            f"Expected {expected} decided {source_round} matches, "
            f"found {len(decided)} of {len(source)}"
        )
    matches = transition.pairing_rule(decided, transition.first_sequence, date)
    if len(matches) != transition.expected_target_count:  # pragma: no cover
        raise IntegrityViolationError(
            f"Generated {len(matches)} matches after {source_round}, "
            f"expected {transition.expected_target_count}"
        )
    return matches


def advance_round(tournament: Tournament, source_round: str) -> list[MatchSlot]:
    """Generate the next round and replace only its matches in the schedule."""
    matches = generate_next_round(
        tournament.schedule, source_round, date=tournament.date or ""
    )
    transition = TRANSITIONS[source_round]
    tournament.replace_rounds(transition.target_rounds, matches)
    return matches


def _projected_side(match: MatchSlot) -> MatchSide:
    if match.is_decided and match.winner:
        return MatchSide.player(match.winner)
    return MatchSide.winner_of(match.code)


def project_next_round(
    schedule: Sequence[MatchSlot], source_round: str, *, date: str = ""
) -> list[MatchSlot]:
    """Lay out the round fed by ``source_round`` without requiring its results.

    Decided source matches contribute their winner, undecided ones a
    "Winner of M<n>" placeholder. A 3rd Place side stays TBD until its
    Semifinal is decided.
    """
    transition = TRANSITIONS.get(source_round)
    if transition is None:
        raise NotFoundError(f"No round follows {source_round}")
    source = round_matches(schedule, source_round)
    sides = [_projected_side(match) for match in source]
    matches = [
        _build_match(
            transition.first_sequence + index,
            transition.target_rounds[0],
            sides[index * 2],
            sides[index * 2 + 1],
            date,
        )
        for index in range(len(sides) // 2)
    ]
    if THIRD_PLACE_MATCH in transition.target_rounds and len(source) == 2:
        losers = [match.loser() for match in source]
        matches.append(
            _build_match(
                transition.first_sequence + 1,
                THIRD_PLACE_MATCH,
                MatchSide.player(losers[0]) if losers[0] else MatchSide(),
                MatchSide.player(losers[1]) if losers[1] else MatchSide(),
                date,
            )
        )
    return matches


def record_winner(match: MatchSlot, winner: str, admin_user: str) -> None:
    if not match.has_player(winner):
        raise InvalidValueError(
            f"{winner} is not a player in {match.code} ({match.players_label()})"
        )
    match.winner = winner
    match.is_completed = True
    match.completed_at = utc_now_iso()
    match.completed_by = admin_user


def is_bracket_complete(schedule: Sequence[MatchSlot]) -> bool:
    """Both the Final and the 3rd Place Match carry a recorded winner."""
    final = round_matches(schedule, FINAL)
    third_place = round_matches(schedule, THIRD_PLACE_MATCH)
    if not final or not third_place:
        return False
    return final[0].is_decided and third_place[0].is_decided


__all__ = [
    "RoundTransition",
    "TRANSITIONS",
    "advance_round",
    "can_publish_round",
    "generate_next_round",
    "is_bracket_complete",
    "match_code",
    "next_round_name",
    "project_next_round",
    "record_winner",
    "round_matches",
    "seed_round_of_32",
]

import random

import pytest

from tests.helpers import (
    bracket_tournament,
    decide_matches,
    make_registration,
    make_registrations,
    play_through,
    player_name,
)
from tournament_progression import (
    FINAL,
    QUARTERFINAL,
    ROUND_OF_16,
    ROUND_OF_32,
    SEMIFINAL,
    THIRD_PLACE_MATCH,
    IncompletePreconditionError,
    InvalidValueError,
    NotFoundError,
)
from tournament_progression.bracket import (
    TRANSITIONS,
    advance_round,
    can_publish_round,
    generate_next_round,
    is_bracket_complete,
    next_round_name,
    project_next_round,
    record_winner,
    seed_round_of_32,
)


def test_full_roster_pairs_slot_k_with_slot_33_minus_k():
    matches = seed_round_of_32(make_registrations("T1", 32))

    assert len(matches) == 16
    for k, match in enumerate(matches, start=1):
        assert match.code == f"M{k}"
        assert match.sequence == k
        assert match.round_name == ROUND_OF_32
        assert match.players == (player_name(k), player_name(33 - k))
        assert match.is_completed is False


def test_seeding_ignores_input_order():
    registrations = make_registrations("T1", 32)
    random.Random(4).shuffle(registrations)
    matches = seed_round_of_32(registrations)
    assert matches[0].players == (player_name(1), player_name(32))
    assert matches[15].players == (player_name(16), player_name(17))


def test_partial_roster_skips_matches_without_opponent():
    matches = seed_round_of_32(make_registrations("T1", 20))

    assert [match.code for match in matches] == ["M13", "M14", "M15", "M16"]
    assert matches[0].players == (player_name(13), player_name(20))
    assert matches[-1].players == (player_name(16), player_name(17))


def test_unslotted_registrations_are_ordered_last():
    registrations = make_registrations("T1", 31)
    registrations.append(make_registration("T1", None, 100, name="Late Entry"))
    matches = seed_round_of_32(registrations)
    assert matches[0].players == (player_name(1), "Late Entry")


def test_empty_roster_is_rejected():
    with pytest.raises(IncompletePreconditionError):
        seed_round_of_32([])


def test_round_of_16_pairs_consecutive_winners_by_sequence():
    tournament = bracket_tournament()
    winners = decide_matches(tournament, ROUND_OF_32)
    random.Random(1).shuffle(tournament.schedule)

    round_of_16 = generate_next_round(tournament.schedule, ROUND_OF_32)

    assert [match.code for match in round_of_16] == [f"M{n}" for n in range(17, 25)]
    for index, match in enumerate(round_of_16):
        assert match.round_name == ROUND_OF_16
        assert match.players == (winners[2 * index], winners[2 * index + 1])


def test_round_of_16_refused_when_a_match_is_undecided():
    tournament = bracket_tournament()
    decide_matches(tournament, ROUND_OF_32)
    tournament.find_match("M9").winner = None
    before = tournament.to_item()["schedule"]

    with pytest.raises(IncompletePreconditionError):
        advance_round(tournament, ROUND_OF_32)

    assert tournament.to_item()["schedule"] == before


def test_round_of_16_refused_for_partial_first_round():
    tournament = bracket_tournament(20)
    decide_matches(tournament, ROUND_OF_32)
    with pytest.raises(IncompletePreconditionError):
        generate_next_round(tournament.schedule, ROUND_OF_32)


def test_advance_round_replaces_only_target_round():
    tournament = bracket_tournament()
    decide_matches(tournament, ROUND_OF_32)
    advance_round(tournament, ROUND_OF_32)
    advance_round(tournament, ROUND_OF_32)

    assert len(tournament.matches_in_round(ROUND_OF_32)) == 16
    assert len(tournament.matches_in_round(ROUND_OF_16)) == 8
    assert len(tournament.schedule) == 24


def test_quarterfinal_and_semifinal_sequences():
    tournament = bracket_tournament()
    play_through(tournament, QUARTERFINAL)

    quarterfinals = tournament.matches_in_round(QUARTERFINAL)
    semifinals = tournament.matches_in_round(SEMIFINAL)
    assert [match.sequence for match in quarterfinals] == [25, 26, 27, 28]
    assert [match.sequence for match in semifinals] == [29, 30]


def test_final_and_third_place_use_semifinal_winners_and_losers():
    tournament = bracket_tournament()
    play_through(tournament, QUARTERFINAL)
    semifinals = tournament.matches_in_round(SEMIFINAL)
    record_winner(semifinals[0], semifinals[0].players[1], "admin")
    record_winner(semifinals[1], semifinals[1].players[0], "admin")

    matches = advance_round(tournament, SEMIFINAL)

    final, third_place = matches
    assert final.round_name == FINAL and final.code == "M31"
    assert third_place.round_name == THIRD_PLACE_MATCH and third_place.code == "M32"
    assert final.players == (semifinals[0].players[1], semifinals[1].players[0])
    assert third_place.players == (semifinals[0].players[0], semifinals[1].players[1])


def test_projected_semifinal_shows_placeholders_until_decided():
    tournament = bracket_tournament()
    play_through(tournament, QUARTERFINAL)
    semifinals = tournament.matches_in_round(SEMIFINAL)
    record_winner(semifinals[0], semifinals[0].players[1], "admin")

    final, third_place = project_next_round(
        tournament.schedule, SEMIFINAL, date=tournament.date
    )

    assert (final.code, third_place.code) == ("M31", "M32")
    assert final.side_one.display() == semifinals[0].players[1]
    assert final.side_two.display() == "Winner of M30"
    assert third_place.side_one.display() == semifinals[0].players[0]
    assert third_place.side_two.display() == "TBD"
    assert final.date == "2024-02-03"
    assert tournament.matches_in_round(FINAL) == []


def test_projection_needs_a_following_round():
    with pytest.raises(NotFoundError):
        project_next_round(bracket_tournament().schedule, THIRD_PLACE_MATCH)


def test_no_round_follows_the_final():
    tournament = bracket_tournament()
    with pytest.raises(NotFoundError):
        generate_next_round(tournament.schedule, FINAL)


def test_next_round_name_follows_transition_table():
    assert next_round_name(ROUND_OF_32) == ROUND_OF_16
    assert next_round_name(ROUND_OF_16) == QUARTERFINAL
    assert next_round_name(QUARTERFINAL) == SEMIFINAL
    assert next_round_name(SEMIFINAL) == FINAL
    assert next_round_name(FINAL) is None
    assert TRANSITIONS[SEMIFINAL].target_rounds == (FINAL, THIRD_PLACE_MATCH)


def test_record_winner_rejects_non_player():
    tournament = bracket_tournament()
    match = tournament.find_match("M1")
    with pytest.raises(InvalidValueError):
        record_winner(match, "Somebody Else", "admin")
    assert match.is_completed is False


def test_record_winner_stamps_completion_metadata():
    tournament = bracket_tournament()
    match = tournament.find_match("M2")
    record_winner(match, player_name(31), "referee")
    assert match.winner == player_name(31)
    assert match.is_completed is True
    assert match.completed_by == "referee"
    assert match.completed_at
    assert match.loser() == player_name(2)


def test_can_publish_round():
    tournament = bracket_tournament()
    assert can_publish_round(tournament.schedule, ROUND_OF_32) is False
    decide_matches(tournament, ROUND_OF_32)
    assert can_publish_round(tournament.schedule, ROUND_OF_32) is True
    assert can_publish_round(tournament.schedule, ROUND_OF_16) is False


def test_bracket_complete_requires_final_and_third_place():
    tournament = bracket_tournament()
    play_through(tournament, SEMIFINAL)
    assert is_bracket_complete(tournament.schedule) is False

    decide_matches(tournament, FINAL)
    assert is_bracket_complete(tournament.schedule) is False

    decide_matches(tournament, THIRD_PLACE_MATCH)
    assert is_bracket_complete(tournament.schedule) is True

"""Per-tournament orchestration of slot allocation and bracket progression.

Every mutating operation runs under one re-entrant lock per tournament id,
checks its preconditions before writing anything, appends an audit entry and
reports its outcome as an ``OperationResult`` instead of raising.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final

from .allocation import NO_SLOT_AVAILABLE, RoundLabelCycler, SlotAllocator
from .bracket import (
    advance_round,
    can_publish_round,
    generate_next_round,
    is_bracket_complete,
    next_round_name,
    project_next_round,
    record_winner,
    seed_round_of_32,
)
from .capacity import is_full, remaining_slots, taken_slot_numbers
from .errors import (
    CapacityExceededError,
    IncompletePreconditionError,
    NotFoundError,
    PersistenceFailureError,
    ProgressionError,
    SlotConflictError,
)
from .integrity import validate_integrity as inspect_schedule
from .models import (
    ROUND_OF_16,
    ROUND_OF_32,
    STATUS_COMPLETED,
    AuditEntry,
    BracketProgression,
    MatchSlot,
    Registration,
    Tournament,
    utc_now_iso,
)
from .storage import TournamentStorage
from .validation import (
    InvalidValueError,
    normalize_match_code,
    normalize_player_name,
    normalize_tournament_id,
    validate_admin_user,
    validate_round_name,
)

log: Final = logging.getLogger("tournament-progression")

SYSTEM_USER: Final = "system"
DEFAULT_SLOT_CLAIM_ATTEMPTS: Final = 3


@dataclass(slots=True)
class OperationResult:
    success: bool
    message: str
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    steps: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, message: str, **details: Any) -> OperationResult:
        return cls(success=True, message=message, details=details)

    @classmethod
    def failed(cls, error: str, message: str, **details: Any) -> OperationResult:
        return cls(success=False, message=message, error=error, details=details)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.steps:
            data["steps"] = list(self.steps)
        return data


class ProgressionService:
    def __init__(
        self,
        storage: TournamentStorage,
        *,
        allocator: SlotAllocator | None = None,
        label_cycler: RoundLabelCycler | None = None,
        audit_enabled: bool = True,
        slot_claim_attempts: int = DEFAULT_SLOT_CLAIM_ATTEMPTS,
    ) -> None:
        self._storage = storage
        self._allocator = allocator or SlotAllocator()
        self._labels = label_cycler or RoundLabelCycler()
        self._audit_enabled = audit_enabled
        self._slot_claim_attempts = max(1, slot_claim_attempts)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ----- Plumbing -----
    def lock_for(self, tournament_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(tournament_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[tournament_id] = lock
            return lock

    def _mutate(
        self,
        action: str,
        tournament_id: str,
        admin_user: str,
        operation: Callable[..., OperationResult],
        **kwargs: Any,
    ) -> OperationResult:
        try:
            tournament_id = normalize_tournament_id(tournament_id)
            admin_user = validate_admin_user(admin_user)
        except InvalidValueError as exc:
            return OperationResult.failed("invalid_value", str(exc))

        with self.lock_for(tournament_id):
            try:
                result = operation(tournament_id, admin_user, **kwargs)
            except PersistenceFailureError as exc:
                log.exception(
                    "Persistence failure during %s for tournament %s",
                    action,
                    tournament_id,
                )
                result = OperationResult.failed(exc.code, "Storage operation failed")
            except ProgressionError as exc:
                log.warning(
                    "%s refused for tournament %s: %s", action, tournament_id, exc
                )
                result = OperationResult.failed(exc.code, str(exc))
            except InvalidValueError as exc:
                result = OperationResult.failed("invalid_value", str(exc))

            details: dict[str, Any] = {
                "success": result.success,
                "message": result.message,
            }
            if result.error is not None:
                details["error"] = result.error
            if result.steps:
                details["steps"] = list(result.steps)
            self._audit(tournament_id, action, admin_user, details)
        return result

    def _audit(
        self,
        tournament_id: str,
        action: str,
        admin_user: str,
        details: dict[str, Any],
    ) -> None:
        if not self._audit_enabled:
            return
        timestamp = utc_now_iso()
        entry = AuditEntry(
            tournament_id=tournament_id,
            action=action,
            resource_id=tournament_id,
            admin_user=admin_user,
            timestamp=timestamp,
            audit_id=uuid.uuid4().hex[:12],
            details=details,
        )
        try:
            self._storage.append_audit(entry)
        except PersistenceFailureError as exc:
            log.warning(
                "Failed to append audit entry %s for tournament %s: %s",
                action,
                tournament_id,
                exc,
            )

    def _require_tournament(self, tournament_id: str) -> Tournament:
        tournament = self._storage.get_tournament(tournament_id)
        if tournament is None:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        return tournament

    def _load_progression(
        self, tournament_id: str, admin_user: str
    ) -> BracketProgression:
        progression = self._storage.get_progression(tournament_id)
        if progression is None:
            progression = BracketProgression.initial(tournament_id, admin_user)
        return progression

    def _save(
        self,
        tournament: Tournament,
        progression: BracketProgression,
        admin_user: str,
    ) -> None:
        progression.touch(admin_user)
        previous = self._storage.get_tournament(tournament.tournament_id)
        self._storage.save_tournament(tournament)
        try:
            self._storage.save_progression(progression)
        except PersistenceFailureError:
            if previous is not None:
                self._restore_tournament(previous)
            raise

    def _restore_tournament(self, previous: Tournament) -> None:
        try:
            self._storage.save_tournament(previous)
        except PersistenceFailureError:
            log.exception(
                "Failed to restore schedule of tournament %s after a partial save",
                previous.tournament_id,
            )

    def _seed_allocation_state(
        self, tournament_id: str, registrations: list[Registration]
    ) -> None:
        self._allocator.seed_taken_slots(
            tournament_id, taken_slot_numbers(tournament_id, registrations)
        )
        if not self._labels.is_seeded(tournament_id):
            self._labels.seed(tournament_id, len(registrations))

    # ----- Registration -----
    def allocate_slot(
        self, tournament_id: str, admin_user: str = SYSTEM_USER
    ) -> OperationResult:
        return self._mutate(
            "allocate_slot", tournament_id, admin_user, self._allocate_slot
        )

    def _allocate_slot(self, tournament_id: str, _admin_user: str) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        if not self._allocator.is_seeded(tournament_id):
            registrations = self._storage.list_registrations(tournament_id)
            self._seed_allocation_state(tournament_id, registrations)
        slot = self._allocator.allocate_random_slot(tournament_id, tournament.capacity)
        if slot == NO_SLOT_AVAILABLE:
            raise CapacityExceededError(
                f"All {tournament.capacity} slots are taken in {tournament_id}"
            )
        return OperationResult.ok(f"Allocated slot {slot}", slot_number=slot)

    def next_round_label(
        self, tournament_id: str, admin_user: str = SYSTEM_USER
    ) -> OperationResult:
        return self._mutate(
            "next_round_label", tournament_id, admin_user, self._next_round_label
        )

    def _next_round_label(
        self, tournament_id: str, _admin_user: str
    ) -> OperationResult:
        if not self._labels.is_seeded(tournament_id):
            registrations = self._storage.list_registrations(tournament_id)
            self._labels.seed(tournament_id, len(registrations))
        label, index = self._labels.next_label(tournament_id)
        return OperationResult.ok(f"Assigned {label}", label=label, index=index)

    def register_participant(
        self, tournament_id: str, full_name: str, admin_user: str = SYSTEM_USER
    ) -> OperationResult:
        return self._mutate(
            "register_participant",
            tournament_id,
            admin_user,
            self._register_participant,
            full_name=full_name,
        )

    def _register_participant(
        self, tournament_id: str, _admin_user: str, *, full_name: str
    ) -> OperationResult:
        name = normalize_player_name(full_name)
        tournament = self._require_tournament(tournament_id)
        registrations = self._storage.list_registrations(tournament_id)
        if is_full(tournament_id, registrations, tournament.capacity):
            raise CapacityExceededError(
                f"Tournament {tournament_id} is fully booked "
                f"({tournament.capacity} participants)"
            )
        self._seed_allocation_state(tournament_id, registrations)
        label, index = self._labels.next_label(tournament_id)

        for attempt in range(1, self._slot_claim_attempts + 1):
            slot = self._allocator.allocate_random_slot(
                tournament_id, tournament.capacity
            )
            if slot == NO_SLOT_AVAILABLE:
                raise CapacityExceededError(
                    f"No free slot left in tournament {tournament_id}"
                )
            registration = Registration(
                registration_id=f"REG-{uuid.uuid4().hex[:10]}",
                tournament_id=tournament_id,
                full_name=name,
                created_at=utc_now_iso(),
                slot_number=slot,
                round_label=label,
                round_index=index + 1,
            )
            try:
                self._storage.append_registration(registration)
            except SlotConflictError as exc:
                log.warning(
                    "Slot claim attempt %s/%s lost: %s",
                    attempt,
                    self._slot_claim_attempts,
                    exc,
                )
                registrations = self._storage.list_registrations(tournament_id)
                self._seed_allocation_state(tournament_id, registrations)
                continue
            log.info(
                "Registered %s in tournament %s with slot %s (%s)",
                name,
                tournament_id,
                slot,
                label,
            )
            return OperationResult.ok(
                f"Registered {name} in slot {slot}",
                registration_id=registration.registration_id,
                slot_number=slot,
                round_label=label,
                remaining_slots=remaining_slots(
                    tournament_id, [*registrations, registration], tournament.capacity
                ),
            )
        raise PersistenceFailureError(
            f"Could not claim a free slot after {self._slot_claim_attempts} attempts"
        )

    def remove_registration(
        self, tournament_id: str, registration_id: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "remove_registration",
            tournament_id,
            admin_user,
            self._remove_registration,
            registration_id=registration_id,
        )

    def _remove_registration(
        self, tournament_id: str, admin_user: str, *, registration_id: str
    ) -> OperationResult:
        self._require_tournament(tournament_id)
        removed = self._storage.delete_registration(tournament_id, registration_id)
        if removed is None:
            raise NotFoundError(f"Registration {registration_id} not found")
        if removed.slot_number is not None:
            self._allocator.release_slot(tournament_id, removed.slot_number)
        remaining = self._storage.list_registrations(tournament_id)
        cleared = False
        if not remaining:
            self._clear_schedule(tournament_id, admin_user)
            cleared = True
            log.info(
                "Last registrant left tournament %s; schedule cleared", tournament_id
            )
        return OperationResult.ok(
            f"Removed registration {registration_id}",
            registration_id=registration_id,
            schedule_cleared=cleared,
        )

    # ----- Bracket progression -----
    def populate_round_of_32(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "populate_round_32", tournament_id, admin_user, self._populate_round_of_32
        )

    def _populate_round_of_32(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        registrations = self._storage.list_registrations(tournament_id)
        matches = seed_round_of_32(registrations, date=tournament.date or "")
        tournament.replace_rounds((ROUND_OF_32,), matches)
        progression = self._load_progression(tournament_id, admin_user)
        self._save(tournament, progression, admin_user)
        log.info(
            "Populated %s for tournament %s: %s matches from %s participants",
            ROUND_OF_32,
            tournament_id,
            len(matches),
            len(registrations),
        )
        return OperationResult.ok(
            "Round of 32 matches populated successfully",
            match_count=len(matches),
            participants=len(registrations),
        )

    def populate_round_of_16(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "populate_round_16", tournament_id, admin_user, self._populate_round_of_16
        )

    def _populate_round_of_16(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        matches = advance_round(tournament, ROUND_OF_32)
        progression = self._load_progression(tournament_id, admin_user)
        progression.current_round = ROUND_OF_16
        self._save(tournament, progression, admin_user)
        log.info("Populated %s for tournament %s", ROUND_OF_16, tournament_id)
        return OperationResult.ok(
            "Round of 16 matches populated successfully", match_count=len(matches)
        )

    def publish_round_results(
        self, tournament_id: str, round_name: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "publish_round",
            tournament_id,
            admin_user,
            self._publish_round_results,
            round_name=round_name,
        )

    def _publish_round_results(
        self, tournament_id: str, admin_user: str, *, round_name: str
    ) -> OperationResult:
        round_name = validate_round_name(round_name)
        tournament = self._require_tournament(tournament_id)
        if not can_publish_round(tournament.schedule, round_name):
            raise IncompletePreconditionError(
                f"{round_name} has undecided matches or no matches at all"
            )
        generated: list[MatchSlot] = []
        target = next_round_name(round_name)
        if target is not None:
            generated = advance_round(tournament, round_name)
        progression = self._load_progression(tournament_id, admin_user)
        round_state = progression.find_round(round_name)
        if round_state is not None:
            round_state.mark_completed(admin_user)
        if target is not None:
            progression.current_round = target
        self._save(tournament, progression, admin_user)
        completed = self._complete_if_finished(tournament)
        log.info(
            "Published %s for tournament %s; generated %s matches",
            round_name,
            tournament_id,
            len(generated),
        )
        return OperationResult.ok(
            f"{round_name} results published",
            next_round=target,
            generated=[match.code for match in generated],
            tournament_completed=completed,
        )

    def fix_progression(self, tournament_id: str, admin_user: str) -> OperationResult:
        return self._mutate(
            "fix_progression", tournament_id, admin_user, self._fix_progression
        )

    def _fix_progression(self, tournament_id: str, admin_user: str) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        first_round = tournament.matches_in_round(ROUND_OF_32)
        round_of_16 = generate_next_round(
            first_round, ROUND_OF_32, date=tournament.date or ""
        )
        removed = len(tournament.schedule) - len(first_round)
        tournament.schedule = [*first_round, *round_of_16]
        progression = self._load_progression(tournament_id, admin_user)
        for round_state in progression.rounds:
            if round_state.name != ROUND_OF_32:
                round_state.reset()
        progression.current_round = ROUND_OF_16
        self._save(tournament, progression, admin_user)
        log.info(
            "Fixed progression for tournament %s: dropped %s downstream matches",
            tournament_id,
            removed,
        )
        return OperationResult.ok(
            "Tournament progression fixed successfully",
            removed_matches=removed,
            match_count=len(round_of_16),
        )

    def clear_schedule(self, tournament_id: str, admin_user: str) -> OperationResult:
        return self._mutate(
            "clear_schedule", tournament_id, admin_user, self._clear_schedule
        )

    def _clear_schedule(self, tournament_id: str, admin_user: str) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        removed = len(tournament.schedule)
        tournament.schedule = []
        progression = self._load_progression(tournament_id, admin_user)
        progression.reset(admin_user)
        self._save(tournament, progression, admin_user)
        log.info("Cleared %s matches for tournament %s", removed, tournament_id)
        return OperationResult.ok(
            "Tournament schedule cleared successfully", removed_matches=removed
        )

    def regenerate_progression(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "regenerate_progression",
            tournament_id,
            admin_user,
            self._regenerate_progression,
        )

    def _regenerate_progression(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        tournament = self._require_tournament(tournament_id)
        steps: list[str] = []

        tournament.schedule = []
        steps.append("Cleared all existing tournament matches")

        self._storage.delete_progression(tournament_id)
        progression = BracketProgression.initial(tournament_id, admin_user)
        steps.append("Reset progression data to initial state")

        registrations = self._storage.list_registrations(tournament_id)
        if registrations:
            matches = seed_round_of_32(registrations, date=tournament.date or "")
            tournament.replace_rounds((ROUND_OF_32,), matches)
            steps.append(
                f"Populated Round of 32 with {len(registrations)} participants"
            )
        else:
            steps.append(
                "No participants found - tournament schedule will remain empty"
            )

        self._save(tournament, progression, admin_user)
        steps.append("Tournament progression has been completely reset and regenerated")
        log.info("Regenerated progression for tournament %s", tournament_id)
        result = OperationResult.ok(
            "Tournament progression successfully reset and regenerated",
            participants=len(registrations),
        )
        result.steps = steps
        return result

    def record_match_winner(
        self, tournament_id: str, match_code: str, winner: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "record_match_winner",
            tournament_id,
            admin_user,
            self._record_match_winner,
            match_code=match_code,
            winner=winner,
        )

    def _record_match_winner(
        self, tournament_id: str, admin_user: str, *, match_code: str, winner: str
    ) -> OperationResult:
        code = normalize_match_code(match_code)
        winner = normalize_player_name(winner)
        tournament = self._require_tournament(tournament_id)
        match = tournament.find_match(code)
        if match is None:
            raise NotFoundError(f"Match {code} not found in tournament {tournament_id}")
        if match.winner and match.winner != winner:
            log.warning(
                "Overwriting winner of %s in tournament %s: %s -> %s",
                code,
                tournament_id,
                match.winner,
                winner,
            )
        record_winner(match, winner, admin_user)
        progression = self._load_progression(tournament_id, admin_user)
        self._save(tournament, progression, admin_user)
        completed = self._complete_if_finished(tournament)
        return OperationResult.ok(
            f"Recorded {winner} as winner of {code}",
            match_code=code,
            winner=winner,
            tournament_completed=completed,
        )

    # ----- Completion -----
    def _complete_if_finished(self, tournament: Tournament) -> bool:
        if tournament.status == STATUS_COMPLETED:
            return True
        if not is_bracket_complete(tournament.schedule):
            return False
        completed_at = utc_now_iso()
        try:
            self._storage.update_tournament_fields(
                tournament.tournament_id,
                status=STATUS_COMPLETED,
                completed_at=completed_at,
                completed_by=SYSTEM_USER,
            )
        except ProgressionError:
            log.exception(
                "Failed to mark tournament %s as Completed", tournament.tournament_id
            )
            return False
        tournament.status = STATUS_COMPLETED
        tournament.completed_at = completed_at
        tournament.completed_by = SYSTEM_USER
        log.info(
            "Tournament %s status automatically updated to Completed",
            tournament.tournament_id,
        )
        self._audit(
            tournament.tournament_id,
            "complete_tournament",
            SYSTEM_USER,
            {"completed_at": completed_at},
        )
        return True

    def check_completion(self, tournament_id: str) -> bool:
        """Mark the tournament Completed once Final and 3rd place are decided."""
        try:
            tournament_id = normalize_tournament_id(tournament_id)
        except InvalidValueError:
            return False
        with self.lock_for(tournament_id):
            try:
                tournament = self._storage.get_tournament(tournament_id)
                if tournament is None:
                    return False
                return self._complete_if_finished(tournament)
            except ProgressionError:
                log.exception(
                    "Error checking completion status for tournament %s",
                    tournament_id,
                )
                return False

    def archive_tournament(
        self, tournament_id: str, admin_user: str
    ) -> OperationResult:
        return self._mutate(
            "archive_tournament", tournament_id, admin_user, self._archive_tournament
        )

    def _archive_tournament(
        self, tournament_id: str, _admin_user: str
    ) -> OperationResult:
        self._require_tournament(tournament_id)
        removed = self._storage.delete_progression(tournament_id)
        self._allocator.forget(tournament_id)
        self._labels.forget(tournament_id)
        return OperationResult.ok(
            "Tournament progression archived", progression_removed=removed
        )

    # ----- Read-only views -----
    def validate_integrity(self, tournament_id: str) -> OperationResult:
        try:
            tournament_id = normalize_tournament_id(tournament_id)
            tournament = self._require_tournament(tournament_id)
        except InvalidValueError as exc:
            return OperationResult.failed("invalid_value", str(exc))
        except NotFoundError as exc:
            return OperationResult.failed(
                exc.code, str(exc), is_valid=False, errors=[str(exc)], warnings=[]
            )
        except PersistenceFailureError as exc:
            log.exception("Failed to load tournament %s for validation", tournament_id)
            return OperationResult.failed(exc.code, "Storage operation failed")

        report = inspect_schedule(tournament.schedule)
        if report.is_valid:
            return OperationResult.ok(
                "Tournament progression integrity validated successfully",
                **report.to_dict(),
            )
        log.warning(
            "Integrity issues in tournament %s: %s",
            tournament_id,
            "; ".join(report.errors),
        )
        return OperationResult.failed(
            "integrity_violation",
            "Tournament progression integrity issues found",
            **report.to_dict(),
        )

    def get_progression_status(self, tournament_id: str) -> OperationResult:
        try:
            tournament_id = normalize_tournament_id(tournament_id)
            self._require_tournament(tournament_id)
            progression = self._load_progression(tournament_id, SYSTEM_USER)
        except InvalidValueError as exc:
            return OperationResult.failed("invalid_value", str(exc))
        except ProgressionError as exc:
            return OperationResult.failed(exc.code, str(exc))
        pending = progression.pending_rounds()
        return OperationResult.ok(
            "Progression status loaded",
            current_round=progression.current_round,
            next_round=pending[0] if pending else None,
            completed_rounds=progression.completed_rounds(),
            pending_rounds=pending,
        )

    def get_matches_by_round(
        self, tournament_id: str, round_name: str
    ) -> list[MatchSlot]:
        try:
            tournament_id = normalize_tournament_id(tournament_id)
            tournament = self._storage.get_tournament(tournament_id)
        except InvalidValueError:
            return []
        except ProgressionError:
            log.exception("Error loading matches for tournament %s", tournament_id)
            return []
        if tournament is None:
            return []
        return tournament.matches_in_round(round_name)

    def preview_next_round(
        self, tournament_id: str, round_name: str
    ) -> list[MatchSlot]:
        """Project the round fed by ``round_name`` from its current results.

        Nothing is written. Undecided source matches show as "Winner of" sides.
        """
        try:
            tournament_id = normalize_tournament_id(tournament_id)
            round_name = validate_round_name(round_name)
            tournament = self._storage.get_tournament(tournament_id)
            if tournament is None:
                return []
            return project_next_round(
                tournament.schedule, round_name, date=tournament.date or ""
            )
        except InvalidValueError:
            return []
        except ProgressionError:
            log.exception(
                "Error previewing round after %s for %s", round_name, tournament_id
            )
            return []


__all__ = [
    "DEFAULT_SLOT_CLAIM_ATTEMPTS",
    "OperationResult",
    "ProgressionService",
    "SYSTEM_USER",
]

"""
engine.py — PCA Allocation Engine

Phase sequence for one day:

  non-floating placement → special-program reservation → substitution
      → held slot selections → floating fill-in → invalid-slot bundling
      → pool sufficiency check

Requested phase decides which steps run:

  non-floating               placement, substitution
  non-floating-with-special  placement, programs, substitution
  floating                   selections, fill-in, bundling, check   (seeded from a previous call)
  all                        everything

Programs always run before substitution so PCAs reserved for a program are
not offered as substitutes for the same slots.

Decisions:
  The engine needs outside input at two points at most: the substitution
  choice (once per run) and raw-pending tie-breaks (once per tie). When the
  context asks for them, compute_allocation() stops and returns a
  PendingDecision instead of a result; resume() records the answer and
  carries on. The run is deterministic, so resuming replays it with the
  recorded answers. allocate() wraps this loop around async hooks.

Failure:
  InsufficientStaffingError is the only fatal outcome. Substitution and
  program shortfalls are advisory strings on AllocationResult.errors.
"""

import copy
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pca_allocator.allocation_config import (
    ALL_SLOTS,
    ERROR_MISSING_SLOT_SUBSTITUTION,
    ERROR_SPECIAL_PROGRAM,
    FTE_EPSILON,
    PHASE_ALL,
    PHASE_FLOATING,
    PHASE_NON_FLOATING,
    PHASES,
    TEAMS,
    WEEKDAYS,
)
from pca_allocator.bundling import bundle_invalid_slots
from pca_allocator.floating import initial_pending, run_floating_fill
from pca_allocator.models import (
    AllocationContext,
    AllocationResult,
    DecisionKind,
    DecisionLog,
    InsufficientStaffingError,
    InvalidSnapshotError,
    PendingDecision,
    SubstitutionChoice,
    SubstitutionNeed,
)
from pca_allocator.placement import place_non_floating
from pca_allocator.reservations import execute_slot_assignments, validate_selections
from pca_allocator.special_programs import format_program_error, reserve_special_programs
from pca_allocator.substitution import format_substitution_error, run_substitution
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

Outcome = Union[AllocationResult, PendingDecision]


# ---------------------------------------------------------------------------
# Decision replay
# ---------------------------------------------------------------------------

class _DecisionRequired(Exception):
    def __init__(self, pending: PendingDecision):
        super().__init__(pending.kind.value)
        self.pending = pending


class _DecisionReplay:
    """Answers decision points from the log, or stops the run to ask."""

    def __init__(self, context: AllocationContext, decisions: DecisionLog):
        self.context = context
        self.decisions = decisions
        self._tie_index = 0

    def substitution(self, needs: List[SubstitutionNeed]) -> Optional[Dict[str, SubstitutionChoice]]:
        if self.decisions.substitutions is not None:
            return self.decisions.substitutions
        if self.context.ask_substitution:
            raise _DecisionRequired(PendingDecision(
                kind=DecisionKind.SUBSTITUTION,
                context=self.context,
                decisions=self.decisions,
                needs=needs,
            ))
        return None

    def tie_break(self, teams: List[str], value: float) -> Optional[str]:
        if self._tie_index < len(self.decisions.tie_breaks):
            answer = self.decisions.tie_breaks[self._tie_index]
            self._tie_index += 1
            return answer
        if self.context.ask_tie_break:
            raise _DecisionRequired(PendingDecision(
                kind=DecisionKind.TIE_BREAK,
                context=self.context,
                decisions=self.decisions,
                tied_teams=list(teams),
                tied_value=value,
            ))
        return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_context(context: AllocationContext) -> None:
    if context.phase not in PHASES:
        raise InvalidSnapshotError(f"Unknown phase {context.phase!r}; expected one of {', '.join(PHASES)}")
    if context.weekday is not None and context.weekday not in WEEKDAYS + ("sat", "sun"):
        raise InvalidSnapshotError(f"Unknown weekday {context.weekday!r}")

    for team, demand in context.team_demand.items():
        if team not in TEAMS:
            raise InvalidSnapshotError(f"Unknown team in demand: {team!r}")
        if demand < 0:
            raise InvalidSnapshotError(f"Negative demand for {team}: {demand}")

    seen = set()
    for staff in context.staff_pool:
        if staff.id in seen:
            raise InvalidSnapshotError(f"Duplicate staff id {staff.id!r}")
        seen.add(staff.id)
        if staff.team is not None and staff.team not in TEAMS:
            raise InvalidSnapshotError(f"{staff.name}: unknown team {staff.team!r}")
        bad = [s for s in staff.available_slots if s not in ALL_SLOTS]
        if bad or (staff.invalid_slot is not None and staff.invalid_slot not in ALL_SLOTS):
            raise InvalidSnapshotError(f"{staff.name}: slots must be within 1-4")

    for team in context.team_preferences:
        if team not in TEAMS:
            raise InvalidSnapshotError(f"Unknown team in preferences: {team!r}")

    for program in context.special_programs:
        try:
            program.kind
        except ValueError as e:
            raise InvalidSnapshotError(str(e)) from e

    for selection in context.slot_selections:
        if selection.team not in TEAMS or selection.slot not in ALL_SLOTS:
            raise InvalidSnapshotError(
                f"Bad slot selection: {selection.team!r} slot {selection.slot!r} of {selection.pca_id!r}"
            )
    conflicts = validate_selections(context.slot_selections)
    if conflicts:
        raise InvalidSnapshotError("; ".join(conflicts))

    if context.phase == PHASE_FLOATING and context.existing_team_assigned is None:
        raise InvalidSnapshotError(
            "The floating phase needs the previous phase's team-assigned tracker"
        )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def _check_pool(book: AllocationBook, result: AllocationResult) -> None:
    """Fatal when demand is not met and some team stays under 1.0 FTE."""
    demand = book.context.team_demand
    total_required = sum(demand.values())
    if result.total_assigned_fte >= total_required - FTE_EPSILON:
        return

    short = {
        team: book.team_assigned.get(team, 0.0)
        for team in demand
        if book.team_assigned.get(team, 0.0) < 1.0 - FTE_EPSILON
    }
    if short:
        error = InsufficientStaffingError(short, result)
        logger.error(str(error))
        raise error


def _run(context: AllocationContext, replay: _DecisionReplay) -> AllocationResult:
    phase = context.phase
    book = AllocationBook(context)
    errors: Dict[str, str] = {}
    does_floating = phase in (PHASE_FLOATING, PHASE_ALL)

    if phase == PHASE_FLOATING:
        book.seed(context.existing_allocations, context.existing_team_assigned)
    else:
        place_non_floating(book)
        if phase != PHASE_NON_FLOATING:
            message = format_program_error(reserve_special_programs(book, context.weekday))
            if message:
                errors[ERROR_SPECIAL_PROGRAM] = message
        message = format_substitution_error(run_substitution(book, replay.substitution))
        if message:
            errors[ERROR_MISSING_SLOT_SUBSTITUTION] = message

    working_pending: Optional[Dict[str, float]] = None
    if does_floating:
        working_pending = initial_pending(book)
        if context.slot_selections:
            execute_slot_assignments(book, context.slot_selections, working_pending)
        working_pending = run_floating_fill(book, replay.tie_break, working_pending)
        bundle_invalid_slots(book)

    if working_pending is not None and context.user_adjusted_pending_fte:
        pending = dict(working_pending)
    else:
        pending = {team: book.pending(team) for team in context.team_demand}

    result = AllocationResult(
        allocations=book.allocations(),
        team_assigned=dict(book.team_assigned),
        pending_fte=pending,
        total_assigned_fte=sum(book.team_assigned.values()),
        phase=phase,
        errors=errors,
        assignment_log=list(book.events),
    )
    for key, message in errors.items():
        logger.warning(f"{key}: {message}")
    logger.info(
        f"Allocation ({phase}): {len(result.allocations)} records, "
        f"{result.total_assigned_fte:.2f} FTE assigned"
    )

    if does_floating:
        _check_pool(book, result)
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_allocation(
    context: AllocationContext,
    decisions: Optional[DecisionLog] = None,
) -> Outcome:
    """
    Run the requested phase(s).

    Returns an AllocationResult, or a PendingDecision when the context asks
    for a caller decision that the log does not answer yet.

    Raises:
        InvalidSnapshotError       malformed snapshot
        InsufficientStaffingError  pool cannot cover demand (carries the result)
    """
    _validate_context(context)
    replay = _DecisionReplay(context, decisions or DecisionLog())
    try:
        return _run(context, replay)
    except _DecisionRequired as request:
        logger.info(f"Allocation paused for a {request.pending.kind.value} decision")
        return request.pending


def _as_choice(value: Any) -> SubstitutionChoice:
    if isinstance(value, SubstitutionChoice):
        return value
    return SubstitutionChoice(staff_id=str(value["staff_id"]), slots=[int(s) for s in value["slots"]])


def resume(pending: PendingDecision, answer: Any) -> Outcome:
    """
    Answer a PendingDecision and continue.

    SUBSTITUTION: {need staff id → SubstitutionChoice | {"staff_id", "slots"}}
                  (None or {} = let the engine choose)
    TIE_BREAK:    the chosen team (None = alphabetical)
    """
    decisions = copy.deepcopy(pending.decisions)
    if pending.kind is DecisionKind.SUBSTITUTION:
        decisions.substitutions = {
            staff_id: _as_choice(choice) for staff_id, choice in (answer or {}).items()
        }
    else:
        decisions.tie_breaks.append(answer)
    if pending.split_phases:
        return run_phases_separately(pending.context, decisions)
    return compute_allocation(pending.context, decisions)


SubstitutionHook = Callable[[List[SubstitutionNeed]], Awaitable[Any]]
TieBreakHook = Callable[[List[str], float], Awaitable[Optional[str]]]


async def allocate(
    context: AllocationContext,
    on_substitution: Optional[SubstitutionHook] = None,
    on_tie_break: Optional[TieBreakHook] = None,
) -> AllocationResult:
    """
    Run to completion, awaiting the hooks at each decision point.
    Without a hook the matching decision is made automatically.
    """
    context = dataclasses.replace(
        context,
        ask_substitution=on_substitution is not None,
        ask_tie_break=on_tie_break is not None,
    )
    outcome = compute_allocation(context)
    while isinstance(outcome, PendingDecision):
        if outcome.kind is DecisionKind.SUBSTITUTION:
            answer = await on_substitution(outcome.needs)
        else:
            answer = await on_tie_break(outcome.tied_teams, outcome.tied_value)
        outcome = resume(outcome, answer)
    return outcome


def run_phases_separately(
    context: AllocationContext,
    decisions: Optional[DecisionLog] = None,
) -> Outcome:
    """
    non-floating-with-special followed by floating, feeding the first call's
    records and tracker into the second. Advisory errors and assignment logs
    of both calls are merged onto the final result.

    A PendingDecision from either call carries the caller's context and is
    marked split_phases, so resume() replays both calls and keeps the merge.
    """
    first = compute_allocation(
        dataclasses.replace(context, phase="non-floating-with-special"), decisions
    )
    if isinstance(first, PendingDecision):
        return dataclasses.replace(first, context=context, split_phases=True)
    second = compute_allocation(
        dataclasses.replace(
            context,
            phase=PHASE_FLOATING,
            existing_allocations=first.allocations,
            existing_team_assigned=first.team_assigned,
        ),
        decisions,
    )
    if isinstance(second, PendingDecision):
        return dataclasses.replace(second, context=context, split_phases=True)
    second.errors = {**first.errors, **second.errors}
    second.assignment_log = first.assignment_log + second.assignment_log
    return second


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def calculate_coverage_metrics(
    result: AllocationResult,
    team_demand: Dict[str, float],
) -> Dict[str, Any]:
    """
    Per-team coverage for reporting.

    Returns:
        {
          teams: {team: {demand, assigned, pending, coverage_pct}},
          total_demand, total_assigned, total_pending,
          shortfall_teams: [team, ...],
          staff_slots: {staff_name: int},
        }
    """
    teams: Dict[str, Dict[str, float]] = {}
    for team, demand in team_demand.items():
        assigned = result.team_assigned.get(team, 0.0)
        teams[team] = {
            "demand": demand,
            "assigned": assigned,
            "pending": result.pending_fte.get(team, max(0.0, demand - assigned)),
            "coverage_pct": (min(assigned, demand) / demand * 100) if demand > 0 else 100.0,
        }

    staff_slots = {a.staff_name: len(a.counted_slots()) for a in result.allocations}
    return {
        "teams": teams,
        "total_demand": sum(team_demand.values()),
        "total_assigned": result.total_assigned_fte,
        "total_pending": sum(t["pending"] for t in teams.values()),
        "shortfall_teams": sorted(t for t, v in teams.items() if v["pending"] > FTE_EPSILON),
        "staff_slots": staff_slots,
    }


def normalize_result(result: AllocationResult) -> Dict[str, Any]:
    """Stable, rounded view of a result for comparing two runs."""
    allocations = []
    for a in sorted(result.allocations, key=lambda x: x.staff_id):
        allocations.append({
            "staff_id": a.staff_id,
            "slots": [a.slot_team(s) for s in ALL_SLOTS],
            "fte_assigned": round(a.fte_assigned, 4),
            "fte_remaining": round(a.fte_remaining, 4),
            "special_program_ids": sorted(a.special_program_ids),
            "invalid_slot": a.invalid_slot,
            "substitution_for": sorted(a.substitution_for.items()),
        })
    return {
        "allocations": allocations,
        "team_assigned": {t: round(v, 4) for t, v in sorted(result.team_assigned.items())},
        "pending_fte": {t: round(v, 4) for t, v in sorted(result.pending_fte.items())},
        "total_assigned_fte": round(result.total_assigned_fte, 4),
    }

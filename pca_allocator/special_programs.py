"""
special_programs.py — Special-program reservation phase

For each staffed program active on the weekday:
  1. Resolve the day's slots (explicit config, else the kind's default) and
     the team each slot serves (the kind's slot → team mapper).
  2. Skip the program when none of its teams is still short of demand.
  3. Pick one PCA: first from the program's preference order, then any
     tagged PCA (floating before non-floating), in pool order.
  4. Fill only the currently-empty program slots on that PCA's record,
     capped by remaining FTE, and tag the record with the program id.

A program whose record already exists is topped up instead of re-assigned,
so running the phase twice books nothing new.

Programs that only add demand (DRM) are skipped here; see
compute_program_addons().
"""

import logging
from typing import Dict, List, Optional

from pca_allocator.allocation_config import (
    DEFAULT_PROGRAM_ADDON_FTE,
    DEMAND_TOLERANCE,
    FTE_PER_SLOT,
)
from pca_allocator.matching import floor_match, get_program_staff, is_preferred
from pca_allocator.models import SpecialProgram, StaffAvailability
from pca_allocator.programs import get_strategy, is_active_on, program_slots_for_day
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "special_program"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _team_is_short(book: AllocationBook, team: str) -> bool:
    demand = book.context.team_demand.get(team, 0.0)
    return book.team_assigned.get(team, 0.0) < demand - DEMAND_TOLERANCE


def _program_carrier(book: AllocationBook, program: SpecialProgram) -> Optional[StaffAvailability]:
    for allocation in book.allocations():
        if program.id in allocation.special_program_ids:
            return book.staff(allocation.staff_id)
    return None


def _can_serve(
    book: AllocationBook,
    staff: StaffAvailability,
    slot_teams: Dict[int, str],
) -> bool:
    allocation = book.record(staff.id)
    new_slots = 0
    for slot, team in slot_teams.items():
        if slot not in staff.available_slots:
            return False
        owner = allocation.slot_team(slot) if allocation else None
        if owner is None:
            new_slots += 1
        elif owner != team:
            return False
    return new_slots == 0 or book.slot_capacity(staff) > 0


def _find_candidate(
    book: AllocationBook,
    program: SpecialProgram,
    slot_teams: Dict[int, str],
) -> Optional[StaffAvailability]:
    tagged = get_program_staff(book.context.staff_pool, program)
    order = {staff_id: i for i, staff_id in enumerate(program.staff_ids)}
    ranked = (
        sorted((s for s in tagged if s.id in order), key=lambda s: order[s.id])
        + [s for s in tagged if s.id not in order and s.floating]
        + [s for s in tagged if s.id not in order and not s.floating]
    )
    for staff in ranked:
        if _can_serve(book, staff, slot_teams):
            return staff
    return None


def _fill(
    book: AllocationBook,
    staff: StaffAvailability,
    program: SpecialProgram,
    slot_teams: Dict[int, str],
) -> int:
    allocation = book.record_for(staff)
    capacity = book.slot_capacity(staff)
    filled = 0
    for slot in sorted(slot_teams):
        if allocation.slot_team(slot) is not None:
            continue
        if filled >= capacity:
            break
        team = slot_teams[slot]
        preference = book.context.preference_for(team)
        if book.bind(
            staff, slot, team, PHASE_NAME,
            program_id=program.id,
            preferred_pca=is_preferred(staff, preference),
            preferred_slot=slot in preference.preferred_slots,
            floor_match=floor_match(staff, preference),
            gym_slot=slot == preference.gym_slot,
        ):
            filled += 1
    if program.id not in allocation.special_program_ids:
        allocation.special_program_ids.append(program.id)
    return filled


# ---------------------------------------------------------------------------
# Phase
# ---------------------------------------------------------------------------

def reserve_special_programs(book: AllocationBook, weekday: Optional[str]) -> List[str]:
    """
    Run the reservation phase. Returns the names of programs that still had
    team demand but no eligible PCA.
    """
    context = book.context
    unfulfilled: List[str] = []

    for program in context.special_programs:
        strategy = get_strategy(program.kind)
        if not strategy.staffed or not is_active_on(program, weekday):
            continue

        slot_teams: Dict[int, str] = {}
        for slot in program_slots_for_day(program, weekday):
            team = strategy.slot_team_mapper(program, slot, lambda t: _team_is_short(book, t))
            if team and not context.preference_for(team).avoids(slot):
                slot_teams[slot] = team

        if not any(_team_is_short(book, team) for team in set(slot_teams.values())):
            logger.debug(f"Program {program.name}: no team short of demand, skipped")
            continue

        staff = _program_carrier(book, program) or _find_candidate(book, program, slot_teams)
        if staff is None:
            logger.warning(f"Program {program.name}: no eligible PCA")
            unfulfilled.append(program.name)
            continue

        filled = _fill(book, staff, program, slot_teams)
        logger.info(
            f"Program {program.name}: {staff.name} → "
            f"{', '.join(f'{s}:{t}' for s, t in sorted(slot_teams.items()))} ({filled} new slots)"
        )

    return unfulfilled


def format_program_error(unfulfilled: List[str]) -> Optional[str]:
    if not unfulfilled:
        return None
    return f"Unable to find PCA for special programs: {', '.join(unfulfilled)}"


# ---------------------------------------------------------------------------
# Capacity helpers
# ---------------------------------------------------------------------------

def compute_reserved_program_fte(programs: List[SpecialProgram], weekday: Optional[str]) -> float:
    """FTE the staffed programs active on `weekday` take out of the pool."""
    total = 0.0
    for program in programs:
        if not get_strategy(program.kind).staffed or not is_active_on(program, weekday):
            continue
        total += len(program_slots_for_day(program, weekday)) * FTE_PER_SLOT
    return total


def compute_program_addons(programs: List[SpecialProgram], weekday: Optional[str]) -> Dict[str, float]:
    """team → extra demand contributed by add-on-only programs active that day."""
    addons: Dict[str, float] = {}
    for program in programs:
        if get_strategy(program.kind).staffed or not is_active_on(program, weekday):
            continue
        team = program.team or "DRO"
        fte = program.addon_fte if program.addon_fte is not None else DEFAULT_PROGRAM_ADDON_FTE
        addons[team] = addons.get(team, 0.0) + fte
    return addons

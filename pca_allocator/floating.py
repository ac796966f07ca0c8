"""
floating.py — Floating fill-in phase

Loop:
  1. Pick the team with the largest pending FTE among teams whose
     midpoint-rounded pending is still > 0. A caller team order replaces
     this entirely. Exact raw-pending ties go to the tie breaker, else to
     the alphabetically first team.
  2. Fill that team: repeatedly take the best floating PCA (team-preferred
     first; a PCA able to give a full 4-slot day when ≥ 4 slots are owed;
     otherwise the one with the most usable slots) and bind as many of
     their usable slots as are still owed, preferred slots first.
  3. A team that is still short once nobody can advance it is excluded,
     so the loop always terminates.
"""

import logging
from typing import Callable, Dict, List, Optional, Set

from pca_allocator.allocation_config import FULL_DAY_SLOTS, FTE_PER_SLOT, TIE_TOLERANCE
from pca_allocator.matching import (
    floor_match,
    is_avoided,
    is_preferred,
    pick_block_candidate,
)
from pca_allocator.models import StaffAvailability, TeamPreference
from pca_allocator.rounding import round_to_nearest_quarter_with_midpoint, slots_for_fte
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "floating"
UNLISTED_TEAM_RANK = 999

TieBreaker = Callable[[List[str], float], Optional[str]]


# ---------------------------------------------------------------------------
# Team selection
# ---------------------------------------------------------------------------

def initial_pending(book: AllocationBook) -> Dict[str, float]:
    """Pending FTE per demand team, with caller overrides applied."""
    pending = {team: book.pending(team) for team in book.context.team_demand}
    for team, fte in (book.context.user_adjusted_pending_fte or {}).items():
        pending[team] = max(0.0, float(fte))
    return pending


def select_next_team(
    pending: Dict[str, float],
    excluded: Set[str],
    team_order: Optional[List[str]] = None,
    tie_break: Optional[TieBreaker] = None,
) -> Optional[str]:
    candidates = [
        team for team, fte in pending.items()
        if team not in excluded and round_to_nearest_quarter_with_midpoint(fte) > 0
    ]
    if not candidates:
        return None

    if team_order:
        rank = {team: i for i, team in enumerate(team_order)}
        return min(candidates, key=lambda t: (rank.get(t, UNLISTED_TEAM_RANK), t))

    highest = max(pending[team] for team in candidates)
    tied = sorted(team for team in candidates if abs(pending[team] - highest) <= TIE_TOLERANCE)
    if len(tied) > 1 and tie_break is not None:
        chosen = tie_break(tied, highest)
        if chosen in tied:
            return chosen
        if chosen is not None:
            logger.warning(f"Tie-break answer {chosen!r} not among tied teams {tied}; using {tied[0]}")
    return tied[0]


# ---------------------------------------------------------------------------
# Slot helpers
# ---------------------------------------------------------------------------

def usable_slots(
    book: AllocationBook,
    staff: StaffAvailability,
    team: str,
    preference: TeamPreference,
) -> List[int]:
    """Free slots of `staff` that `team` may take (gym rule, no double floating cover)."""
    return [
        slot for slot in book.free_slots(staff)
        if not preference.avoids(slot)
        and not book.floating_claimed(team, slot, exclude_staff_id=staff.id)
    ]


def order_slots(slots: List[int], preference: TeamPreference, slots_needed: int) -> List[int]:
    if slots_needed >= FULL_DAY_SLOTS:
        return sorted(slots)
    first = [s for s in preference.preferred_slots if s in slots]
    return first + sorted(s for s in slots if s not in first)


# ---------------------------------------------------------------------------
# Fill
# ---------------------------------------------------------------------------

def _pick_staff(
    book: AllocationBook,
    pool: List[StaffAvailability],
    team: str,
    preference: TeamPreference,
    slots_needed: int,
) -> Optional[StaffAvailability]:
    def coverage(staff: StaffAvailability) -> int:
        return min(len(usable_slots(book, staff, team, preference)), book.slot_capacity(staff))

    eligible = [s for s in pool if not is_avoided(s, preference) and coverage(s) > 0]
    order = {staff_id: i for i, staff_id in enumerate(preference.preferred_pca_ids)}
    preferred = sorted((s for s in eligible if s.id in order), key=lambda s: order[s.id])
    others = [s for s in eligible if s.id not in order]

    prefer_whole_day = slots_needed >= FULL_DAY_SLOTS
    return (
        pick_block_candidate(preferred, coverage, FULL_DAY_SLOTS, prefer_whole_day)
        or pick_block_candidate(others, coverage, FULL_DAY_SLOTS, prefer_whole_day)
    )


def fill_team(
    book: AllocationBook,
    team: str,
    pending: Dict[str, float],
    pool: List[StaffAvailability],
) -> int:
    """Fill one team until it is covered or nobody can help; returns slots bound."""
    preference = book.context.preference_for(team)
    bound = 0

    while round_to_nearest_quarter_with_midpoint(pending[team]) > 0:
        slots_needed = slots_for_fte(round_to_nearest_quarter_with_midpoint(pending[team]))
        staff = _pick_staff(book, pool, team, preference, slots_needed)
        if staff is None:
            break

        take = min(slots_needed, book.slot_capacity(staff))
        slots = order_slots(usable_slots(book, staff, team, preference), preference, slots_needed)[:take]
        for slot in slots:
            if book.bind(
                staff, slot, team, PHASE_NAME,
                preferred_pca=is_preferred(staff, preference),
                preferred_slot=slot in preference.preferred_slots,
                floor_match=floor_match(staff, preference),
                gym_slot=slot == preference.gym_slot,
            ):
                pending[team] = max(0.0, pending[team] - FTE_PER_SLOT)
                bound += 1
        logger.debug(f"Floating: {staff.name} → {team} slots {slots} (pending now {pending[team]:.2f})")

    return bound


def run_floating_fill(
    book: AllocationBook,
    tie_break: Optional[TieBreaker] = None,
    pending: Optional[Dict[str, float]] = None,
) -> Dict[str, float]:
    """
    Run the fill-in loop; returns the working pending FTE per team.
    `pending` (updated in place) defaults to initial_pending(book).
    """
    context = book.context
    if pending is None:
        pending = initial_pending(book)
    pool = [s for s in context.staff_pool if s.floating and s.is_available]
    excluded: Set[str] = set()

    while True:
        team = select_next_team(pending, excluded, context.user_team_order, tie_break)
        if team is None:
            break
        bound = fill_team(book, team, pending, pool)
        if round_to_nearest_quarter_with_midpoint(pending[team]) > 0:
            logger.info(f"Floating: {team} still short {pending[team]:.2f} FTE after {bound} slots; excluded")
            excluded.add(team)

    return pending

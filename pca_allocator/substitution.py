"""
substitution.py — Floating cover for non-floating PCAs who are short of slots

Non-floating PCAs fall into three states:
  - full         all four slots available → nothing to do
  - partial      some slots missing (half day, late return) → per-slot cover
  - unavailable  is_available = False (full-day leave) → whole-day cover

Candidates are on-duty floating PCAs with at least one of the needed slots
still free on their record (program reservations included, so occupied
slots are skipped, never overwritten). A whole-day need only takes a
floating PCA who can cover every needed slot alone; it is never split.
Ranking:
  Tier 1  team-preferred PCAs
  Tier 2  floor-matching PCAs
  then alphabetical by name.

Resolution order per need: the caller's choice (if any), then automatic
selection with the shared block preference; whatever is left becomes an
advisory error.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from pca_allocator.allocation_config import ALL_SLOTS
from pca_allocator.matching import (
    floor_match,
    is_floor_match,
    is_preferred,
    pick_block_candidate,
)
from pca_allocator.models import (
    StaffAvailability,
    SubstitutionCandidate,
    SubstitutionChoice,
    SubstitutionNeed,
)
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "substitution"

ChoiceProvider = Callable[[List[SubstitutionNeed]], Optional[Dict[str, SubstitutionChoice]]]


# ---------------------------------------------------------------------------
# Needs + candidates
# ---------------------------------------------------------------------------

def _already_covered(book: AllocationBook, staff_id: str) -> List[int]:
    covered: List[int] = []
    for allocation in book.allocations():
        covered.extend(s for s, who in allocation.substitution_for.items() if who == staff_id)
    return covered


def collect_substitution_needs(book: AllocationBook) -> List[SubstitutionNeed]:
    """
    Whole-day needs first, then partial needs, each in pool order.
    Candidates are ranked against the book's current state.
    """
    whole_day: List[SubstitutionNeed] = []
    partial: List[SubstitutionNeed] = []

    for staff in book.context.staff_pool:
        if staff.floating or not staff.team:
            continue
        covered = _already_covered(book, staff.id)
        if not staff.is_available:
            slots = [s for s in ALL_SLOTS if s not in covered]
            target = whole_day
        else:
            slots = [
                s for s in ALL_SLOTS
                if s not in staff.available_slots
                and s != staff.invalid_slot
                and s not in covered
            ]
            target = partial
        if slots:
            target.append(SubstitutionNeed(
                staff_id=staff.id,
                staff_name=staff.name,
                team=staff.team,
                slots=slots,
                whole_day=not staff.is_available,
            ))

    needs = whole_day + partial
    for need in needs:
        need.candidates = rank_candidates(book, need, need.slots)
    if needs:
        logger.info(f"Substitution: {len(needs)} non-floating PCAs need cover")
    return needs


def rank_candidates(
    book: AllocationBook,
    need: SubstitutionNeed,
    slots: List[int],
) -> List[SubstitutionCandidate]:
    """Floating PCAs able to cover any of `slots` (all of them for a whole-day need), tier-ordered."""
    preference = book.context.preference_for(need.team)
    candidates: List[SubstitutionCandidate] = []

    for staff in book.context.staff_pool:
        if not staff.floating or not staff.is_available:
            continue
        if book.slot_capacity(staff) <= 0:
            continue
        free = book.free_slots(staff)
        coverable = [s for s in slots if s in free]
        if not coverable:
            continue
        if need.whole_day and (len(coverable) < len(slots) or book.slot_capacity(staff) < len(slots)):
            continue
        candidates.append(SubstitutionCandidate(
            staff_id=staff.id,
            staff_name=staff.name,
            coverable_slots=coverable,
            preferred=is_preferred(staff, preference),
            floor_match=is_floor_match(staff, preference),
        ))

    def tier_key(c: SubstitutionCandidate) -> Tuple[int, int, str]:
        return (0 if c.preferred else 1, 0 if c.floor_match else 1, c.staff_name.lower())

    candidates.sort(key=tier_key)
    return candidates


# ---------------------------------------------------------------------------
# Applying cover
# ---------------------------------------------------------------------------

def _cover(
    book: AllocationBook,
    staff: StaffAvailability,
    need: SubstitutionNeed,
    slots: List[int],
) -> List[int]:
    """Bind `slots` of the floating PCA to the need's team; returns slots bound."""
    preference = book.context.preference_for(need.team)
    allocation = book.record_for(staff)
    bound: List[int] = []
    for slot in slots:
        if book.bind(
            staff, slot, need.team, PHASE_NAME,
            substitution_for=need.staff_id,
            preferred_pca=is_preferred(staff, preference),
            preferred_slot=slot in preference.preferred_slots,
            floor_match=floor_match(staff, preference),
            gym_slot=slot == preference.gym_slot,
        ):
            allocation.substitution_for[slot] = need.staff_id
            bound.append(slot)
    if bound:
        logger.info(f"Substitution: {staff.name} covers {need.staff_name} ({need.team}) slots {bound}")
    return bound


def _apply_choice(
    book: AllocationBook,
    need: SubstitutionNeed,
    choice: SubstitutionChoice,
    outstanding: List[int],
) -> List[int]:
    staff = book.staff(choice.staff_id)
    if staff is None or not staff.floating or not staff.is_available:
        logger.warning(f"Substitution choice {choice.staff_id!r} for {need.staff_name} is not an on-duty floating PCA")
        return outstanding

    free = book.free_slots(staff)
    slots = [s for s in choice.slots if s in outstanding and s in free]
    slots = slots[:book.slot_capacity(staff)]
    if need.whole_day and sorted(slots) != sorted(outstanding):
        logger.warning(f"Substitution choice {staff.name} cannot cover the whole day for {need.staff_name}")
        return outstanding
    if not slots:
        logger.warning(f"Substitution choice {staff.name} cannot cover {need.staff_name} slots {choice.slots}")
        return outstanding

    bound = _cover(book, staff, need, slots)
    return [s for s in outstanding if s not in bound]


def _auto_cover(book: AllocationBook, need: SubstitutionNeed, outstanding: List[int]) -> List[int]:
    while outstanding:
        ranked = rank_candidates(book, need, outstanding)

        def coverage(c: SubstitutionCandidate) -> int:
            return min(len(c.coverable_slots), book.slot_capacity(book.staff(c.staff_id)))

        best = pick_block_candidate(ranked, coverage, len(outstanding), prefer_whole_block=True)
        if best is None:
            break
        staff = book.staff(best.staff_id)
        bound = _cover(book, staff, need, best.coverable_slots[:coverage(best)])
        if not bound:
            break
        outstanding = [s for s in outstanding if s not in bound]
    return outstanding


# ---------------------------------------------------------------------------
# Phase
# ---------------------------------------------------------------------------

def run_substitution(
    book: AllocationBook,
    choose: Optional[ChoiceProvider] = None,
) -> List[Tuple[SubstitutionNeed, List[int]]]:
    """
    Cover every substitution need. `choose` is asked once with all needs
    (it may return None for "no preference"). Returns the needs left with
    uncovered slots, paired with those slots.
    """
    needs = collect_substitution_needs(book)
    if not needs:
        return []

    choices = (choose(needs) if choose else None) or {}
    unresolved: List[Tuple[SubstitutionNeed, List[int]]] = []

    for need in needs:
        outstanding = list(need.slots)
        choice = choices.get(need.staff_id)
        if choice is not None:
            outstanding = _apply_choice(book, need, choice, outstanding)
        outstanding = _auto_cover(book, need, outstanding)
        if outstanding:
            logger.warning(f"Substitution: {need.staff_name} ({need.team}) left uncovered for slots {outstanding}")
            unresolved.append((need, outstanding))

    return unresolved


def format_substitution_error(unresolved: List[Tuple[SubstitutionNeed, List[int]]]) -> Optional[str]:
    """One advisory string for every need left uncovered."""
    if not unresolved:
        return None

    missing = [
        f"{need.staff_name} ({need.team}): slots {', '.join(str(s) for s in slots)}"
        for need, slots in unresolved
        if not (need.whole_day and slots == need.slots)
    ]
    whole_day = [
        f"{need.staff_name} (FTE=0) in team {need.team}"
        for need, slots in unresolved
        if need.whole_day and slots == need.slots
    ]

    parts: List[str] = []
    if whole_day:
        parts.append(f"No floating PCA available to substitute for {'; '.join(whole_day)}")
    if missing:
        parts.append(f"Unable to find floating PCA substitutes for missing slots: {'; '.join(missing)}")
    return "; ".join(parts)

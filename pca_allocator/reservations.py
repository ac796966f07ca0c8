"""
reservations.py — Preferred-PCA slot reservations

Before floating fill-in a team that names both a preferred PCA and a
preferred slot can have that slot held for it. This module lists which
preferred floating PCAs still have the slot free, flags PCA slots wanted
by more than one team, and books the slots the caller finally picks.

Usage:
  reservations = compute_reservations(book, pending)
  conflicts = validate_selections(selected)
  execute_slot_assignments(book, selected, pending)

The engine runs the last two for AllocationContext.slot_selections: a
conflict rejects the snapshot, the rest are booked just before floating
fill-in.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pca_allocator.allocation_config import FTE_PER_SLOT
from pca_allocator.matching import floor_match, is_preferred
from pca_allocator.models import SlotSelection
from pca_allocator.rounding import round_to_nearest_quarter_with_midpoint
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "reservation"


@dataclass
class TeamReservation:
    team: str
    slot: int
    pca_ids: List[str]
    pca_names: Dict[str, str] = field(default_factory=dict)


@dataclass
class ReservationResult:
    team_reservations: Dict[str, TeamReservation]
    pca_slot_reservations: Dict[str, Dict[int, List[str]]]   # pca id → slot → teams

    @property
    def has_any(self) -> bool:
        return bool(self.team_reservations)


def compute_reservations(book: AllocationBook, pending: Dict[str, float]) -> ReservationResult:
    """
    For each team with a preferred PCA list, a preferred slot and rounded
    pending > 0, list the preferred floating PCAs whose slot is still free.
    Only the first preferred slot is considered.
    """
    team_reservations: Dict[str, TeamReservation] = {}
    pca_slot_reservations: Dict[str, Dict[int, List[str]]] = {}

    for team, preference in book.context.team_preferences.items():
        if not preference.preferred_pca_ids or not preference.preferred_slots:
            continue
        if round_to_nearest_quarter_with_midpoint(pending.get(team, 0.0)) <= 0:
            continue

        slot = preference.preferred_slots[0]
        reserved: List[str] = []
        names: Dict[str, str] = {}
        for pca_id in preference.preferred_pca_ids:
            staff = book.staff(pca_id)
            if staff is None or not staff.floating or staff.on_duty_fte <= 0:
                continue
            if slot not in book.free_slots(staff):
                continue
            reserved.append(pca_id)
            names[pca_id] = staff.name
            pca_slot_reservations.setdefault(pca_id, {}).setdefault(slot, []).append(team)

        if reserved:
            team_reservations[team] = TeamReservation(team, slot, reserved, names)

    return ReservationResult(team_reservations, pca_slot_reservations)


def validate_selections(selections: List[SlotSelection]) -> List[str]:
    """Conflicts where one PCA slot was picked by several teams."""
    by_slot: Dict[tuple, List[str]] = {}
    for s in selections:
        by_slot.setdefault((s.pca_id, s.slot), []).append(s.team)

    conflicts = []
    for (pca_id, slot), teams in by_slot.items():
        if len(teams) > 1:
            conflicts.append(f"Slot {slot} of PCA {pca_id} selected by multiple teams: {', '.join(teams)}")
    return conflicts


def is_slot_selected_by_other_team(
    pca_id: str,
    slot: int,
    team: str,
    selections: List[SlotSelection],
) -> bool:
    return any(s.pca_id == pca_id and s.slot == slot and s.team != team for s in selections)


def execute_slot_assignments(
    book: AllocationBook,
    selections: List[SlotSelection],
    pending: Optional[Dict[str, float]] = None,
) -> int:
    """Book the selected slots; decrements `pending` in place. Returns slots booked."""
    booked = 0
    for s in selections:
        staff = book.staff(s.pca_id)
        if staff is None or not staff.floating or not staff.is_available:
            logger.warning(f"Reservation for {s.team}: {s.pca_id} is not an on-duty floating PCA")
            continue
        if s.slot not in book.free_slots(staff):
            logger.warning(f"Reservation for {s.team}: slot {s.slot} of {staff.name} is not free")
            continue
        if book.floating_claimed(s.team, s.slot, exclude_staff_id=staff.id):
            logger.warning(f"Reservation for {s.team}: slot {s.slot} already served by another floating PCA")
            continue
        if book.slot_capacity(staff) <= 0:
            logger.warning(f"Reservation for {s.team}: PCA {s.pca_id} has no FTE left")
            continue
        preference = book.context.preference_for(s.team)
        if book.bind(
            staff, s.slot, s.team, PHASE_NAME,
            preferred_pca=is_preferred(staff, preference),
            preferred_slot=s.slot in preference.preferred_slots,
            floor_match=floor_match(staff, preference),
            gym_slot=s.slot == preference.gym_slot,
        ):
            booked += 1
            if pending is not None:
                pending[s.team] = max(0.0, pending.get(s.team, 0.0) - FTE_PER_SLOT)
            logger.info(f"Reservation: {staff.name} slot {s.slot} → {s.team}")
    return booked

"""
tracker.py — Allocation book: staff-id index + per-team assigned FTE

Every phase books slots through one AllocationBook so that:
  - each staff member has exactly one Allocation record for the day
    (the "reuse existing record" rule is a dict lookup)
  - team_assigned only moves when a counted slot is newly bound
  - every binding is written to the assignment log
"""

import copy
import logging
from typing import Dict, Iterable, List, Optional

from pca_allocator.allocation_config import ALL_SLOTS, FTE_PER_SLOT, TEAMS
from pca_allocator.models import (
    Allocation,
    AllocationContext,
    AssignmentEvent,
    StaffAvailability,
)
from pca_allocator.rounding import slots_for_fte

logger = logging.getLogger(__name__)


class AllocationBook:

    def __init__(self, context: AllocationContext):
        self.context = context
        self._staff: Dict[str, StaffAvailability] = {s.id: s for s in context.staff_pool}
        self._records: Dict[str, Allocation] = {}
        self.team_assigned: Dict[str, float] = {team: 0.0 for team in TEAMS}
        for team in context.team_demand:
            self.team_assigned.setdefault(team, 0.0)
        self.events: List[AssignmentEvent] = []

    def seed(
        self,
        allocations: Iterable[Allocation],
        team_assigned: Optional[Dict[str, float]] = None,
    ) -> None:
        """Load a previous phase's records and tracker (copied, never shared)."""
        for allocation in allocations:
            self._records[allocation.staff_id] = copy.deepcopy(allocation)
        for team, fte in (team_assigned or {}).items():
            self.team_assigned[team] = float(fte)

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def staff(self, staff_id: str) -> Optional[StaffAvailability]:
        return self._staff.get(staff_id)

    def record(self, staff_id: str) -> Optional[Allocation]:
        return self._records.get(staff_id)

    def allocations(self) -> List[Allocation]:
        return list(self._records.values())

    def record_for(self, staff: StaffAvailability) -> Allocation:
        allocation = self._records.get(staff.id)
        if allocation is None:
            allocation = Allocation(
                staff_id=staff.id,
                staff_name=staff.name,
                team=staff.team,
                base_fte=staff.base_fte,
                fte_pca=staff.on_duty_fte,
                invalid_slot=staff.invalid_slot,
                leave_comeback_time=staff.leave_comeback_time,
                leave_mode=staff.leave_mode,
            )
            self._records[staff.id] = allocation
        return allocation

    def remaining_fte(self, staff: StaffAvailability) -> float:
        allocation = self._records.get(staff.id)
        if allocation is not None:
            return allocation.fte_remaining
        return staff.base_fte if staff.is_available else 0.0

    def slot_capacity(self, staff: StaffAvailability) -> int:
        """How many more counted slots this staff member can take today."""
        return slots_for_fte(self.remaining_fte(staff))

    def free_slots(self, staff: StaffAvailability) -> List[int]:
        """Available slots not yet bound on the staff member's record."""
        if not staff.is_available:
            return []
        allocation = self._records.get(staff.id)
        return [
            slot for slot in ALL_SLOTS
            if slot in staff.available_slots
            and slot != staff.invalid_slot
            and (allocation is None or allocation.slot_team(slot) is None)
        ]

    def floating_claimed(self, team: str, slot: int, exclude_staff_id: Optional[str] = None) -> bool:
        """True if another floating staff member already serves `team` in `slot`."""
        for staff_id, allocation in self._records.items():
            if staff_id == exclude_staff_id:
                continue
            staff = self._staff.get(staff_id)
            if staff is not None and staff.floating and allocation.slot_team(slot) == team:
                return True
        return False

    def pending(self, team: str) -> float:
        demand = self.context.team_demand.get(team, 0.0)
        return max(0.0, demand - self.team_assigned.get(team, 0.0))

    # -----------------------------------------------------------------------
    # Mutation
    # -----------------------------------------------------------------------

    def bind(
        self,
        staff: StaffAvailability,
        slot: int,
        team: str,
        phase: str,
        **event_fields,
    ) -> bool:
        """
        Bind one empty slot of the staff member's record to `team`.

        Returns False (and changes nothing) if the slot is already bound.
        The invalid slot is recorded but never counted toward FTE.
        """
        allocation = self.record_for(staff)
        if allocation.slot_team(slot) is not None:
            return False

        allocation.slots[slot] = team
        counted = slot != allocation.invalid_slot
        if counted:
            self.team_assigned[team] = self.team_assigned.get(team, 0.0) + FTE_PER_SLOT

        self.events.append(AssignmentEvent(
            team=team,
            staff_id=staff.id,
            slot=slot,
            phase=phase,
            counted=counted,
            **event_fields,
        ))
        logger.debug(f"{phase}: {staff.name} slot {slot} → {team}{'' if counted else ' (not counted)'}")
        return True

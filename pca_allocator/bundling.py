"""
bundling.py — Invalid-slot bundling post-process

A floating PCA who leaves or comes back mid half-day keeps one slot that is
worked but not counted (the invalid slot). So it does not show up orphaned,
it is bound to whichever team the PCA serves in the neighbouring slot of the
same half-day (1↔2, 3↔4). The binding never counts toward FTE.
"""

import logging

from pca_allocator.allocation_config import ADJACENT_SLOT
from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "bundling"


def bundle_invalid_slots(book: AllocationBook) -> int:
    """Returns the number of invalid slots bundled."""
    bundled = 0
    for staff in book.context.staff_pool:
        if not staff.floating or staff.invalid_slot is None:
            continue
        allocation = book.record(staff.id)
        if allocation is None or allocation.slot_team(staff.invalid_slot) is not None:
            continue

        neighbour_team = allocation.slot_team(ADJACENT_SLOT[staff.invalid_slot])
        if neighbour_team is None:
            continue
        if book.bind(staff, staff.invalid_slot, neighbour_team, PHASE_NAME):
            bundled += 1
            logger.debug(
                f"Bundled invalid slot {staff.invalid_slot} of {staff.name} with {neighbour_team} "
                f"({staff.leave_mode or 'leave'} {staff.leave_comeback_time or '-'})"
            )
    return bundled

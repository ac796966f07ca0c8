"""
placement.py — Non-floating placement phase

Every on-duty, team-fixed PCA lands on their own team for every slot they
are available. There is no cap from demand: a fixed PCA's full on-duty
capacity always counts for their team. The leave/return (invalid) slot is
bound to the home team too but never counted.
"""

import logging

from pca_allocator.tracker import AllocationBook

logger = logging.getLogger(__name__)

PHASE_NAME = "non_floating"


def place_non_floating(book: AllocationBook) -> int:
    """Place all non-floating staff; returns the number of staff placed."""
    placed = 0
    for staff in book.context.staff_pool:
        if staff.floating or not staff.is_available:
            continue
        if not staff.team:
            logger.debug(f"Skipping non-floating {staff.name}: no home team")
            continue

        for slot in sorted(set(staff.available_slots)):
            book.bind(staff, slot, staff.team, PHASE_NAME)
        if staff.invalid_slot is not None and staff.invalid_slot not in staff.available_slots:
            book.bind(staff, staff.invalid_slot, staff.team, PHASE_NAME)
        placed += 1

    logger.info(f"Non-floating placement: {placed} staff placed")
    return placed

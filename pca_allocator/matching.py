"""
matching.py — Staff ↔ team / program matching rules

  - preferred:     team lists the PCA in preferred_pca_ids
  - avoided:       team lists the PCA in preferred_not_pca_ids
  - floor match:   the PCA works the team's floor (upper / lower)
  - program tag:   the PCA is tagged with the program's name
"""

from typing import Callable, List, Optional, TypeVar

from pca_allocator.models import SpecialProgram, StaffAvailability, TeamPreference

T = TypeVar("T")


def is_preferred(staff: StaffAvailability, preference: TeamPreference) -> bool:
    return staff.id in preference.preferred_pca_ids


def is_avoided(staff: StaffAvailability, preference: TeamPreference) -> bool:
    return staff.id in preference.preferred_not_pca_ids


def floor_match(staff: StaffAvailability, preference: TeamPreference) -> Optional[bool]:
    """None when the team has no floor configured."""
    if not preference.floor:
        return None
    return preference.floor in (staff.floor_pca or [])


def is_floor_match(staff: StaffAvailability, preference: TeamPreference) -> bool:
    return bool(floor_match(staff, preference))


def carries_program(staff: StaffAvailability, program: SpecialProgram) -> bool:
    return staff.has_program(program.name) or staff.has_program(program.id)


def get_program_staff(pool: List[StaffAvailability], program: SpecialProgram) -> List[StaffAvailability]:
    """On-duty staff tagged with the program, in pool order."""
    return [s for s in pool if s.is_available and carries_program(s, program)]


def pick_block_candidate(
    ranked: List[T],
    coverage: Callable[[T], int],
    block_size: int,
    prefer_whole_block: bool,
) -> Optional[T]:
    """
    Block preference shared by floating fill-in and substitution.

    With prefer_whole_block, the first ranked candidate able to cover the
    whole block wins outright. Otherwise (or when nobody can) the candidate
    covering the most slots wins, earlier rank breaking ties.
    """
    if prefer_whole_block:
        for candidate in ranked:
            if coverage(candidate) >= block_size:
                return candidate

    best: Optional[T] = None
    best_cover = 0
    for candidate in ranked:
        cover = coverage(candidate)
        if cover > best_cover:
            best, best_cover = candidate, cover
    return best

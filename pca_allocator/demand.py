"""
demand.py — Per-team PCA demand helpers

The engine consumes demand; these helpers produce it the way the ward does:

  total_pt_per_pca = total_beds / total_pca_on_duty
  team_pca         = beds_per_pt × pt_per_team[team] / total_pt_per_pca
                     (rounded to the nearest 0.25)

plus add-on FTE from add-on-only programs and on-duty FTE by leave type.
"""

from typing import Dict, List, Optional

from pca_allocator.allocation_config import LEAVE_TYPE_FTE
from pca_allocator.models import SpecialProgram
from pca_allocator.rounding import round_to_nearest_quarter
from pca_allocator.special_programs import compute_program_addons


def calculate_pca_fte(
    total_beds: float,
    total_pca_on_duty: float,
    pt_per_team: Dict[str, float],
    beds_per_pt: float,
) -> Dict[str, float]:
    if total_pca_on_duty <= 0:
        raise ValueError("total_pca_on_duty must be positive")
    if total_beds <= 0:
        raise ValueError("total_beds must be positive")

    total_pt_per_pca = total_beds / total_pca_on_duty
    return {
        team: round_to_nearest_quarter(beds_per_pt * pt / total_pt_per_pca)
        for team, pt in pt_per_team.items()
    }


def apply_program_addons(
    demand: Dict[str, float],
    programs: List[SpecialProgram],
    weekday: Optional[str],
) -> Dict[str, float]:
    """Copy of `demand` with add-on-only program FTE added."""
    out = dict(demand)
    for team, fte in compute_program_addons(programs, weekday).items():
        out[team] = out.get(team, 0.0) + fte
    return out


def program_fte_subtraction(
    programs: List[SpecialProgram],
    team: str,
    weekday: Optional[str],
) -> float:
    """FTE the programs' subtraction tables take from `team` on `weekday`."""
    if not weekday:
        return 0.0
    return sum(
        program.fte_subtraction.get(team, {}).get(weekday, 0.0)
        for program in programs
        if weekday in program.weekdays
    )


def leave_fte(leave_type: Optional[str]) -> float:
    """On-duty FTE left by a leave type; no leave (or unknown type) is a full day."""
    if not leave_type:
        return 1.0
    return LEAVE_TYPE_FTE.get(leave_type, 1.0)

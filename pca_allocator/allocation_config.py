"""
allocation_config.py — Teams, Slots & Program Table for PCA Allocation

TEAMS
─────
  FO, SMM, SFM, CPPC, MC, GMC, NSM, DRO
  The order below is the fixed team order used wherever the allocator needs
  a stable team sequence (tracker initialisation, program team fallback).

SLOTS
─────
  Four slots per day, 0.25 FTE each:
    1  09:00-10:30   ┐ AM
    2  10:30-12:00   ┘
    3  13:30-15:00   ┐ PM
    4  15:00-16:30   ┘
  Slot pairs 1↔2 and 3↔4 are "adjacent" (same half-day); 2↔3 is not.

SPECIAL PROGRAMS (defaults, see pca_allocator/programs.py)
────────────────────────────────────────────────────────
  Robotic:  slots 1-4,  1-2 → SMM, 3-4 → SFM
  CRP:      slot 2      → CPPC
  DRM:      no staff, adds +0.4 FTE to DRO demand
  Ortho / Neuro / Cardiac / DRO: slots 1-4 → configured team

LEAVE
─────
  Leave type → FTE left on duty. Anything missing from the table is treated
  as a full working day.
"""

from typing import Dict, List, Tuple

# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------
TEAMS: Tuple[str, ...] = ("FO", "SMM", "SFM", "CPPC", "MC", "GMC", "NSM", "DRO")

# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------
ALL_SLOTS: Tuple[int, ...] = (1, 2, 3, 4)
AM_SLOTS: Tuple[int, ...] = (1, 2)
PM_SLOTS: Tuple[int, ...] = (3, 4)

ADJACENT_SLOT: Dict[int, int] = {1: 2, 2: 1, 3: 4, 4: 3}

SLOT_TIMES: Dict[int, str] = {
    1: "09:00-10:30",
    2: "10:30-12:00",
    3: "13:30-15:00",
    4: "15:00-16:30",
}

FTE_PER_SLOT = 0.25
FULL_DAY_SLOTS = len(ALL_SLOTS)

# ---------------------------------------------------------------------------
# Tolerances
# ---------------------------------------------------------------------------
# "Team still needs program cover" check
DEMAND_TOLERANCE = 0.01
# Exact-equality test for raw pending ties
TIE_TOLERANCE = 1e-9
# Float slack when converting FTE to whole slots
FTE_EPSILON = 1e-6

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------
WEEKDAYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri")

# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------
PHASE_NON_FLOATING = "non-floating"
PHASE_NON_FLOATING_WITH_SPECIAL = "non-floating-with-special"
PHASE_FLOATING = "floating"
PHASE_ALL = "all"
PHASES: Tuple[str, ...] = (
    PHASE_NON_FLOATING,
    PHASE_NON_FLOATING_WITH_SPECIAL,
    PHASE_FLOATING,
    PHASE_ALL,
)

# ---------------------------------------------------------------------------
# Leave types → on-duty FTE
# ---------------------------------------------------------------------------
LEAVE_TYPE_FTE: Dict[str, float] = {
    "VL":          0.0,
    "half day VL": 0.5,
    "TIL":         0.0,
    "SDO":         0.0,
    "sick leave":  0.0,
    "study leave": 0.0,
}

# ---------------------------------------------------------------------------
# Floors (locality shared by some PCAs and teams)
# ---------------------------------------------------------------------------
FLOORS: Tuple[str, ...] = ("upper", "lower")

# ---------------------------------------------------------------------------
# Program defaults
# ---------------------------------------------------------------------------
DEFAULT_PROGRAM_ADDON_FTE = 0.4

# Team fallback for single-team programs when the program row names none
DEFAULT_PROGRAM_TEAMS: Dict[str, str] = {
    "dro": "DRO",
}

# Advisory error keys on AllocationResult.errors
ERROR_MISSING_SLOT_SUBSTITUTION = "missing_slot_substitution"
ERROR_SPECIAL_PROGRAM = "special_program_allocation"
ADVISORY_ERROR_KEYS: List[str] = [
    ERROR_MISSING_SLOT_SUBSTITUTION,
    ERROR_SPECIAL_PROGRAM,
]

"""
programs.py — Special-program kinds and their slot/team strategies

Each program kind is looked up once and carries everything the reservation
phase needs to know about it:

  default_slots     slots used when the program row has none for the weekday
  slot_team_mapper  (program, slot, is_short) → team that slot serves
  staffed           False for add-on-only programs (demand, no staff)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pca_allocator.allocation_config import (
    ALL_SLOTS,
    AM_SLOTS,
    DEFAULT_PROGRAM_TEAMS,
    TEAMS,
)


class ProgramKind(Enum):
    ROBOTIC = "robotic"
    CRP = "crp"
    DRM = "drm"
    ORTHO = "ortho"
    NEURO = "neuro"
    CARDIAC = "cardiac"
    DRO = "dro"

    @classmethod
    def from_name(cls, name: str) -> "ProgramKind":
        key = str(name).strip().lower()
        for kind in cls:
            if kind.value == key:
                return kind
        raise ValueError(f"Unknown special program: {name!r}")


SlotTeamMapper = Callable[[Any, int, Callable[[str], bool]], Optional[str]]


@dataclass(frozen=True)
class ProgramStrategy:
    default_slots: Tuple[int, ...]
    slot_team_mapper: Optional[SlotTeamMapper]
    staffed: bool = True


# ---------------------------------------------------------------------------
# Slot → team mappers
# ---------------------------------------------------------------------------

def _split_by_half_day(program: Any, slot: int, is_short: Callable[[str], bool]) -> Optional[str]:
    """Robotic: morning slots serve SMM, afternoon slots serve SFM."""
    return "SMM" if slot in AM_SLOTS else "SFM"


def _cppc_only(program: Any, slot: int, is_short: Callable[[str], bool]) -> Optional[str]:
    return "CPPC"


def _configured_team(program: Any, slot: int, is_short: Callable[[str], bool]) -> Optional[str]:
    """
    The program's own team when configured. Otherwise the first team, in
    fixed team order, that is still short of demand.
    """
    team = getattr(program, "team", None) or DEFAULT_PROGRAM_TEAMS.get(program.kind.value)
    if team:
        return team
    for candidate in TEAMS:
        if is_short(candidate):
            return candidate
    return None


PROGRAM_STRATEGIES: Dict[ProgramKind, ProgramStrategy] = {
    ProgramKind.ROBOTIC: ProgramStrategy(ALL_SLOTS, _split_by_half_day),
    ProgramKind.CRP:     ProgramStrategy((2,), _cppc_only),
    ProgramKind.DRM:     ProgramStrategy((), None, staffed=False),
    ProgramKind.ORTHO:   ProgramStrategy(ALL_SLOTS, _configured_team),
    ProgramKind.NEURO:   ProgramStrategy(ALL_SLOTS, _configured_team),
    ProgramKind.CARDIAC: ProgramStrategy(ALL_SLOTS, _configured_team),
    ProgramKind.DRO:     ProgramStrategy(ALL_SLOTS, _configured_team),
}


def get_strategy(kind: ProgramKind) -> ProgramStrategy:
    return PROGRAM_STRATEGIES[kind]


def program_slots_for_day(program: Any, weekday: Optional[str]) -> List[int]:
    """Explicit slots for the weekday, else the program kind's default."""
    explicit = (program.slots or {}).get(weekday) if weekday else None
    if explicit:
        return sorted(set(explicit))
    return list(get_strategy(program.kind).default_slots)


def is_active_on(program: Any, weekday: Optional[str]) -> bool:
    return bool(weekday) and weekday in (program.weekdays or [])

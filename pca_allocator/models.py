"""
models.py — Data model for a single day's PCA allocation run

Inputs (read-only for the engine):
  StaffAvailability   one per PCA on the day's pool
  TeamPreference      per-team preferred PCAs / slots / gym slot / floor
  SpecialProgram      program definition (weekdays, slots, preference order)
  SlotSelection       preferred-PCA slot held for a team before floating fill-in
  AllocationContext   the complete snapshot handed to the engine

Working / output records:
  Allocation          one per staff member holding at least one slot
  AssignmentEvent     one per slot bound by any phase (assignment log)
  AllocationResult    final allocations + pending / assigned trackers

Decisions (two-step API):
  SubstitutionNeed, SubstitutionCandidate, SubstitutionChoice,
  DecisionLog, PendingDecision

Errors:
  AllocationError → InsufficientStaffingError (fatal),
                    InvalidSnapshotError (bad input)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pca_allocator.allocation_config import (
    ALL_SLOTS,
    FTE_PER_SLOT,
    PHASE_ALL,
)
from pca_allocator.programs import ProgramKind


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AllocationError(Exception):
    """Base class for allocation failures."""


class InvalidSnapshotError(AllocationError, ValueError):
    """The snapshot handed to the engine is malformed."""


class InsufficientStaffingError(AllocationError):
    """
    The PCA pool cannot bring every team to 1.0 FTE.

    Carries the short teams and the partial result so callers can still
    render what was allocated.
    """

    def __init__(self, short_teams: Dict[str, float], result: "AllocationResult"):
        self.short_teams = dict(short_teams)
        self.result = result
        detail = ", ".join(f"{team} ({fte:.2f})" for team, fte in short_teams.items())
        super().__init__(f"Insufficient PCA pool. Teams below 1.0 FTE: {detail}")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class StaffAvailability:
    id: str
    name: str
    floating: bool = False
    team: Optional[str] = None
    available_slots: List[int] = field(default_factory=lambda: list(ALL_SLOTS))
    base_fte: float = 1.0
    special_programs: List[str] = field(default_factory=list)
    is_available: bool = True
    invalid_slot: Optional[int] = None
    leave_comeback_time: Optional[str] = None
    leave_mode: Optional[str] = None          # "leave" | "come_back"
    leave_type: Optional[str] = None
    floor_pca: List[str] = field(default_factory=list)

    @property
    def on_duty_fte(self) -> float:
        if not self.is_available:
            return 0.0
        return len(self.available_slots) * FTE_PER_SLOT

    def has_program(self, name: str) -> bool:
        wanted = name.strip().lower()
        return any(p.strip().lower() == wanted for p in self.special_programs)


@dataclass
class TeamPreference:
    team: str
    preferred_pca_ids: List[str] = field(default_factory=list)
    preferred_not_pca_ids: List[str] = field(default_factory=list)
    preferred_slots: List[int] = field(default_factory=list)
    gym_slot: Optional[int] = None
    avoid_gym: bool = False
    floor: Optional[str] = None

    def avoids(self, slot: int) -> bool:
        return self.avoid_gym and self.gym_slot is not None and slot == self.gym_slot


@dataclass
class SpecialProgram:
    id: str
    name: str
    weekdays: List[str] = field(default_factory=list)
    slots: Dict[str, List[int]] = field(default_factory=dict)      # weekday → slots
    staff_ids: List[str] = field(default_factory=list)             # preference order
    fte_subtraction: Dict[str, Dict[str, float]] = field(default_factory=dict)  # team → weekday → FTE
    team: Optional[str] = None
    addon_fte: Optional[float] = None

    @property
    def kind(self) -> ProgramKind:
        return ProgramKind.from_name(self.name)


@dataclass
class SlotSelection:
    """A preferred-PCA slot the caller holds for a team before floating fill-in."""
    team: str
    slot: int
    pca_id: str


@dataclass
class AllocationContext:
    """Complete snapshot for one allocation run."""
    team_demand: Dict[str, float]
    staff_pool: List[StaffAvailability]
    phase: str = PHASE_ALL
    weekday: Optional[str] = None
    special_programs: List[SpecialProgram] = field(default_factory=list)
    team_preferences: Dict[str, TeamPreference] = field(default_factory=dict)
    existing_allocations: List["Allocation"] = field(default_factory=list)
    existing_team_assigned: Optional[Dict[str, float]] = None
    user_adjusted_pending_fte: Optional[Dict[str, float]] = None
    user_team_order: Optional[List[str]] = None
    ask_substitution: bool = False
    ask_tie_break: bool = False
    slot_selections: List[SlotSelection] = field(default_factory=list)

    def preference_for(self, team: str) -> TeamPreference:
        return self.team_preferences.get(team) or TeamPreference(team=team)


# ---------------------------------------------------------------------------
# Working / output records
# ---------------------------------------------------------------------------

@dataclass
class Allocation:
    staff_id: str
    staff_name: str
    team: Optional[str]
    base_fte: float
    fte_pca: float
    slots: Dict[int, Optional[str]] = field(
        default_factory=lambda: {slot: None for slot in ALL_SLOTS}
    )
    special_program_ids: List[str] = field(default_factory=list)
    invalid_slot: Optional[int] = None
    leave_comeback_time: Optional[str] = None
    leave_mode: Optional[str] = None
    substitution_for: Dict[int, str] = field(default_factory=dict)   # slot → staff id covered

    def slot_team(self, slot: int) -> Optional[str]:
        return self.slots.get(slot)

    def counted_slots(self) -> List[int]:
        """Occupied slots that count toward FTE (the invalid slot never does)."""
        return [
            slot for slot in ALL_SLOTS
            if self.slots.get(slot) is not None and slot != self.invalid_slot
        ]

    def slots_for_team(self, team: str) -> List[int]:
        return [slot for slot in ALL_SLOTS if self.slots.get(slot) == team]

    def empty_slots(self) -> List[int]:
        return [slot for slot in ALL_SLOTS if self.slots.get(slot) is None]

    def teams(self) -> List[str]:
        seen: List[str] = []
        for slot in ALL_SLOTS:
            team = self.slots.get(slot)
            if team is not None and team not in seen:
                seen.append(team)
        return seen

    @property
    def fte_assigned(self) -> float:
        return len(self.counted_slots()) * FTE_PER_SLOT

    @property
    def fte_remaining(self) -> float:
        return max(0.0, self.base_fte - self.fte_assigned)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "team": self.team,
            "slot1": self.slots.get(1),
            "slot2": self.slots.get(2),
            "slot3": self.slots.get(3),
            "slot4": self.slots.get(4),
            "fte_pca": self.fte_pca,
            "fte_assigned": self.fte_assigned,
            "fte_remaining": self.fte_remaining,
            "base_fte": self.base_fte,
            "special_program_ids": list(self.special_program_ids),
            "invalid_slot": self.invalid_slot,
            "leave_comeback_time": self.leave_comeback_time,
            "leave_mode": self.leave_mode,
            "substitution_for": {str(k): v for k, v in self.substitution_for.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Allocation":
        return cls(
            staff_id=str(data["staff_id"]),
            staff_name=str(data.get("staff_name", data["staff_id"])),
            team=data.get("team"),
            base_fte=float(data.get("base_fte", 1.0)),
            fte_pca=float(data.get("fte_pca", 0.0)),
            slots={slot: data.get(f"slot{slot}") for slot in ALL_SLOTS},
            special_program_ids=list(data.get("special_program_ids") or []),
            invalid_slot=data.get("invalid_slot"),
            leave_comeback_time=data.get("leave_comeback_time"),
            leave_mode=data.get("leave_mode"),
            substitution_for={
                int(k): v for k, v in (data.get("substitution_for") or {}).items()
            },
        )


@dataclass
class AssignmentEvent:
    team: str
    staff_id: str
    slot: int
    phase: str
    counted: bool = True
    preferred_pca: bool = False
    preferred_slot: bool = False
    floor_match: Optional[bool] = None
    gym_slot: bool = False
    program_id: Optional[str] = None
    substitution_for: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class AllocationResult:
    allocations: List[Allocation]
    team_assigned: Dict[str, float]
    pending_fte: Dict[str, float]
    total_assigned_fte: float
    phase: str = PHASE_ALL
    errors: Dict[str, str] = field(default_factory=dict)
    assignment_log: List[AssignmentEvent] = field(default_factory=list)

    def allocation_for(self, staff_id: str) -> Optional[Allocation]:
        for allocation in self.allocations:
            if allocation.staff_id == staff_id:
                return allocation
        return None

    def team_summaries(self) -> Dict[str, Dict[str, Any]]:
        """Per-team digest of the assignment log."""
        summaries: Dict[str, Dict[str, Any]] = {}
        for event in self.assignment_log:
            if not event.counted:
                continue
            s = summaries.setdefault(event.team, {
                "slots_assigned": 0,
                "by_phase": {},
                "preferred_pcas_used": set(),
                "floor_pcas_used": set(),
                "non_floor_pcas_used": set(),
                "preferred_slot_filled": False,
                "gym_slot_used": False,
                "slots": set(),
            })
            s["slots_assigned"] += 1
            s["by_phase"][event.phase] = s["by_phase"].get(event.phase, 0) + 1
            s["slots"].add(event.slot)
            if event.preferred_pca:
                s["preferred_pcas_used"].add(event.staff_id)
            if event.floor_match is True:
                s["floor_pcas_used"].add(event.staff_id)
            elif event.floor_match is False:
                s["non_floor_pcas_used"].add(event.staff_id)
            if event.preferred_slot:
                s["preferred_slot_filled"] = True
            if event.gym_slot:
                s["gym_slot_used"] = True

        for s in summaries.values():
            slots = s.pop("slots")
            s["am_pm_balanced"] = bool(slots & {1, 2}) and bool(slots & {3, 4})
            for key in ("preferred_pcas_used", "floor_pcas_used", "non_floor_pcas_used"):
                s[key] = len(s[key])
        return summaries


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class DecisionKind(Enum):
    SUBSTITUTION = "substitution"
    TIE_BREAK = "tie_break"


@dataclass
class SubstitutionCandidate:
    staff_id: str
    staff_name: str
    coverable_slots: List[int]
    preferred: bool = False
    floor_match: bool = False


@dataclass
class SubstitutionNeed:
    staff_id: str
    staff_name: str
    team: str
    slots: List[int]
    whole_day: bool
    candidates: List[SubstitutionCandidate] = field(default_factory=list)


@dataclass
class SubstitutionChoice:
    staff_id: str
    slots: List[int]


@dataclass
class DecisionLog:
    """Caller answers so far; None means the substitution question is unanswered."""
    substitutions: Optional[Dict[str, SubstitutionChoice]] = None
    tie_breaks: List[str] = field(default_factory=list)


@dataclass
class PendingDecision:
    kind: DecisionKind
    context: AllocationContext
    decisions: DecisionLog
    needs: List[SubstitutionNeed] = field(default_factory=list)
    tied_teams: List[str] = field(default_factory=list)
    tied_value: float = 0.0
    split_phases: bool = False       # raised under run_phases_separately; resume re-runs both calls

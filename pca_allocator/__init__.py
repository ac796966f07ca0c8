"""
PCA Daily Allocation Engine

Modules:
- allocation_config: Teams, slots, phases, leave table, program defaults
- engine: Phase orchestration, two-step decision API, coverage metrics
- placement / special_programs / substitution / floating / bundling: the phases
- reservations: Preferred-PCA slot holds booked ahead of floating fill-in
  (AllocationContext.slot_selections)
- demand: Per-team demand helpers (bed ratio, add-ons, leave FTE)
- config: Snapshot loading from config/ and phase-state hand-off
- constraints: Snapshot validation and result invariant checks
- exporter: CSV / Excel / report / assignment-log outputs
"""

from .config import (
    load_snapshot,
    load_staff_pool,
    load_team_demand,
    load_team_preferences,
    load_special_programs,
    save_phase_state,
    load_phase_state,
    get_config,
)

from .engine import (
    compute_allocation,
    resume,
    allocate,
    run_phases_separately,
    calculate_coverage_metrics,
    normalize_result,
)

from .models import (
    Allocation,
    AllocationContext,
    AllocationResult,
    AllocationError,
    InsufficientStaffingError,
    InvalidSnapshotError,
    PendingDecision,
    DecisionKind,
    DecisionLog,
    SlotSelection,
    SpecialProgram,
    StaffAvailability,
    SubstitutionChoice,
    TeamPreference,
)

__all__ = [
    "load_snapshot",
    "load_staff_pool",
    "load_team_demand",
    "load_team_preferences",
    "load_special_programs",
    "save_phase_state",
    "load_phase_state",
    "get_config",
    "compute_allocation",
    "resume",
    "allocate",
    "run_phases_separately",
    "calculate_coverage_metrics",
    "normalize_result",
    "Allocation",
    "AllocationContext",
    "AllocationResult",
    "AllocationError",
    "InsufficientStaffingError",
    "InvalidSnapshotError",
    "PendingDecision",
    "DecisionKind",
    "DecisionLog",
    "SlotSelection",
    "SpecialProgram",
    "StaffAvailability",
    "SubstitutionChoice",
    "TeamPreference",
]

"""
constraints.py — Allocation invariant checks

Hard constraints (a result violating these is corrupt):
  - FTE_OVERBOOKED: counted slots × 0.25 exceed the PCA's base FTE
  - PLACEMENT_MISMATCH: a slot bound for a PCA who is not available in it
  - DUPLICATE_FLOATING_COVER: two floating PCAs cover the same team-slot
    (substitution cover excluded)
  - TRACKER_MISMATCH: team_assigned disagrees with the counted slots
  - PENDING_MISMATCH: pending ≠ max(0, demand − assigned)

Soft constraints (allocation usable, surface as warnings):
  - SHORTFALL: team still has pending FTE
  - GYM_SLOT_USED: a gym-avoiding team was given its gym slot
  - ADVISORY: substitution / program errors carried on the result

Usage:
  checker = ConstraintChecker(context)
  errors, warnings = checker.validate_snapshot()
  hard, soft = checker.check_all(result)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pca_allocator.allocation_config import ALL_SLOTS, FTE_EPSILON, FTE_PER_SLOT, TEAMS
from pca_allocator.models import AllocationContext, AllocationResult, StaffAvailability
from pca_allocator.programs import get_strategy
from pca_allocator.rounding import format_fte

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    team: Optional[str] = None
    staff: Optional[str] = None
    slot: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.team:
            parts.append(f"team={self.team}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.slot:
            parts.append(f"slot={self.slot}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


class ConstraintChecker:
    """Validates a snapshot before the run and a result after it."""

    def __init__(self, context: AllocationContext):
        self.context = context
        self._staff: Dict[str, StaffAvailability] = {s.id: s for s in context.staff_pool}

    # -----------------------------------------------------------------------
    # HARD: per-PCA FTE ceiling
    # -----------------------------------------------------------------------

    def check_fte_ceiling(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        for a in result.allocations:
            if a.fte_assigned > a.base_fte + FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="FTE_OVERBOOKED",
                    description=f"{format_fte(a.fte_assigned)} FTE booked against base {format_fte(a.base_fte)}",
                    staff=a.staff_name,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: bound slots must be slots the PCA works
    # -----------------------------------------------------------------------

    def check_availability(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        for a in result.allocations:
            staff = self._staff.get(a.staff_id)
            if staff is None:
                continue
            for slot in a.counted_slots():
                if not staff.is_available or slot not in staff.available_slots:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="PLACEMENT_MISMATCH",
                        description=f"slot bound to {a.slot_team(slot)} but PCA is not available",
                        staff=a.staff_name,
                        slot=slot,
                    ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: one floating PCA per team-slot
    # -----------------------------------------------------------------------

    def check_duplicate_floating_cover(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        seen: Dict[Tuple[str, int], str] = {}
        for a in result.allocations:
            staff = self._staff.get(a.staff_id)
            if staff is None or not staff.floating:
                continue
            for slot in a.counted_slots():
                if slot in a.substitution_for:
                    continue
                key = (a.slot_team(slot), slot)
                if key in seen:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="DUPLICATE_FLOATING_COVER",
                        description=f"also covered by {seen[key]}",
                        team=key[0],
                        staff=a.staff_name,
                        slot=slot,
                    ))
                else:
                    seen[key] = a.staff_name
        return violations

    # -----------------------------------------------------------------------
    # HARD: tracker + pending bookkeeping
    # -----------------------------------------------------------------------

    def check_tracker(self, result: AllocationResult) -> List[ConstraintViolation]:
        counted: Dict[str, float] = {}
        for a in result.allocations:
            for slot in a.counted_slots():
                team = a.slot_team(slot)
                counted[team] = counted.get(team, 0.0) + FTE_PER_SLOT

        violations = []
        for team in set(counted) | set(result.team_assigned):
            tracked = result.team_assigned.get(team, 0.0)
            if abs(tracked - counted.get(team, 0.0)) > FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="TRACKER_MISMATCH",
                    description=f"tracker {tracked:.2f} vs slots {counted.get(team, 0.0):.2f}",
                    team=team,
                ))
        return violations

    def check_pending(self, result: AllocationResult) -> List[ConstraintViolation]:
        if self.context.user_adjusted_pending_fte:
            return []
        violations = []
        for team, demand in self.context.team_demand.items():
            expected = max(0.0, demand - result.team_assigned.get(team, 0.0))
            actual = result.pending_fte.get(team, 0.0)
            if actual < 0 or abs(actual - expected) > FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="PENDING_MISMATCH",
                    description=f"pending {actual:.2f}, expected {expected:.2f}",
                    team=team,
                ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT checks
    # -----------------------------------------------------------------------

    def check_shortfall(self, result: AllocationResult) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="SHORTFALL",
                description=f"{format_fte(pending)} FTE unmet",
                team=team,
            )
            for team, pending in sorted(result.pending_fte.items())
            if pending > FTE_EPSILON
        ]

    def check_gym_slot(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        for a in result.allocations:
            for slot in a.counted_slots():
                team = a.slot_team(slot)
                preference = self.context.team_preferences.get(team)
                staff = self._staff.get(a.staff_id)
                if preference is None or staff is None or staff.team == team:
                    continue
                if preference.avoids(slot):
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.SOFT,
                        constraint_type="GYM_SLOT_USED",
                        description="team avoids its gym slot",
                        team=team,
                        staff=a.staff_name,
                        slot=slot,
                    ))
        return violations

    def check_advisory(self, result: AllocationResult) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="ADVISORY",
                description=message,
                details={"key": key},
            )
            for key, message in result.errors.items()
        ]

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        result: AllocationResult,
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft checks.

        Returns:
            (hard_violations, soft_violations)
        """
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_fte_ceiling(result))
        hard.extend(self.check_availability(result))
        hard.extend(self.check_duplicate_floating_cover(result))
        hard.extend(self.check_tracker(result))
        hard.extend(self.check_pending(result))
        soft.extend(self.check_shortfall(result))
        soft.extend(self.check_gym_slot(result))
        soft.extend(self.check_advisory(result))

        for v in hard:
            logger.warning(str(v))
        return hard, soft

    # -----------------------------------------------------------------------
    # Input validation (snapshot)
    # -----------------------------------------------------------------------

    def validate_snapshot(self) -> Tuple[List[str], List[str]]:
        """
        Validate the snapshot's structure before a run.

        Returns:
            (errors, warnings) as lists of strings
        """
        errors: List[str] = []
        warnings: List[str] = []
        ctx = self.context

        ids = [s.id for s in ctx.staff_pool]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            errors.append(f"Duplicate staff ids in pool: {dupes}")

        for team in ctx.team_demand:
            if team not in TEAMS:
                errors.append(f"Unknown team in demand: {team}")

        for s in ctx.staff_pool:
            if s.team is not None and s.team not in TEAMS:
                errors.append(f"{s.name}: unknown team {s.team}")
            if any(slot not in ALL_SLOTS for slot in s.available_slots):
                errors.append(f"{s.name}: available slots {s.available_slots} outside 1-4")
            if not s.floating and not s.team:
                warnings.append(f"{s.name}: non-floating PCA without a home team will not be placed")
            if s.is_available and not s.available_slots:
                warnings.append(f"{s.name}: on duty with no available slots")
            if s.is_available and s.on_duty_fte > s.base_fte + FTE_EPSILON and not s.floating:
                warnings.append(
                    f"{s.name}: {len(s.available_slots)} slots available but base FTE {format_fte(s.base_fte)}"
                )

        for team, preference in ctx.team_preferences.items():
            for pca_id in preference.preferred_pca_ids + preference.preferred_not_pca_ids:
                if pca_id not in self._staff:
                    warnings.append(f"{team}: preference names unknown PCA {pca_id}")

        for program in ctx.special_programs:
            try:
                staffed = get_strategy(program.kind).staffed
            except ValueError as e:
                errors.append(str(e))
                continue
            if staffed and ctx.weekday in program.weekdays:
                if not any(s.has_program(program.name) for s in ctx.staff_pool if s.is_available):
                    warnings.append(f"Program {program.name}: no on-duty PCA tagged for it")

        return errors, warnings

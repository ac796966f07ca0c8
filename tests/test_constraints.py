"""
Tests for ConstraintChecker (result invariants + snapshot validation)
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pca_allocator.constraints import ConstraintChecker, ConstraintSeverity, ConstraintViolation
from pca_allocator.engine import compute_allocation
from pca_allocator.models import (
    Allocation,
    AllocationContext,
    AllocationResult,
    SpecialProgram,
    StaffAvailability,
    TeamPreference,
)


@pytest.fixture
def context():
    return AllocationContext(
        team_demand={"FO": 1.0, "SMM": 1.0},
        staff_pool=[
            StaffAvailability(id="P1", name="Amy", team="FO"),
            StaffAvailability(id="F1", name="Ivy", floating=True),
            StaffAvailability(id="F2", name="Jack", floating=True),
        ],
    )


def types(violations):
    return [v.constraint_type for v in violations]


class TestResultChecks:

    def test_clean_result(self, context):
        result = compute_allocation(context)
        hard, soft = ConstraintChecker(context).check_all(result)
        assert hard == []
        assert soft == []

    def test_tracker_mismatch(self, context):
        result = compute_allocation(context)
        result.team_assigned["FO"] += 0.25
        hard, _ = ConstraintChecker(context).check_all(result)
        assert "TRACKER_MISMATCH" in types(hard)

    def test_pending_mismatch(self, context):
        result = compute_allocation(context)
        result.pending_fte["SMM"] = 0.5
        hard, _ = ConstraintChecker(context).check_all(result)
        assert types(hard) == ["PENDING_MISMATCH"]

    def test_pending_check_skipped_with_overrides(self, context):
        result = compute_allocation(context)
        result.pending_fte["SMM"] = 0.5
        context.user_adjusted_pending_fte = {"SMM": 1.5}
        assert ConstraintChecker(context).check_pending(result) == []

    def test_fte_overbooked_and_unavailable_slot(self, context):
        context.staff_pool[1].available_slots = [1, 2]
        context.staff_pool[1].base_fte = 0.5
        allocation = Allocation(
            staff_id="F1", staff_name="Ivy", team=None, base_fte=0.5, fte_pca=0.5,
            slots={1: "SMM", 2: "SMM", 3: "SMM", 4: None},
        )
        result = AllocationResult([allocation], {"SMM": 0.75}, {"FO": 1.0, "SMM": 0.25}, 0.75)
        checker = ConstraintChecker(context)
        assert types(checker.check_fte_ceiling(result)) == ["FTE_OVERBOOKED"]
        mismatch = checker.check_availability(result)
        assert types(mismatch) == ["PLACEMENT_MISMATCH"]
        assert mismatch[0].slot == 3

    def test_duplicate_floating_cover(self, context):
        allocations = [
            Allocation("F1", "Ivy", None, 1.0, 1.0, slots={1: "SMM", 2: None, 3: None, 4: None}),
            Allocation("F2", "Jack", None, 1.0, 1.0, slots={1: "SMM", 2: None, 3: None, 4: None}),
        ]
        result = AllocationResult(allocations, {"SMM": 0.5}, {"FO": 1.0, "SMM": 0.5}, 0.5)
        violations = ConstraintChecker(context).check_duplicate_floating_cover(result)
        assert types(violations) == ["DUPLICATE_FLOATING_COVER"]
        assert violations[0].staff == "Jack"

    def test_substitution_cover_not_a_duplicate(self, context):
        allocations = [
            Allocation("F1", "Ivy", None, 1.0, 1.0, slots={1: "SMM", 2: None, 3: None, 4: None}),
            Allocation("F2", "Jack", None, 1.0, 1.0, slots={1: "SMM", 2: None, 3: None, 4: None},
                       substitution_for={1: "P9"}),
        ]
        result = AllocationResult(allocations, {"SMM": 0.5}, {"FO": 1.0, "SMM": 0.5}, 0.5)
        assert ConstraintChecker(context).check_duplicate_floating_cover(result) == []

    def test_soft_checks(self, context):
        context.team_preferences = {"SMM": TeamPreference(team="SMM", gym_slot=1, avoid_gym=True)}
        allocation = Allocation("F1", "Ivy", None, 1.0, 1.0, slots={1: "SMM", 2: None, 3: None, 4: None})
        result = AllocationResult(
            [allocation], {"SMM": 0.25}, {"FO": 1.0, "SMM": 0.75}, 0.25,
            errors={"special_program_allocation": "Unable to find PCA for special programs: CRP"},
        )
        _, soft = ConstraintChecker(context).check_all(result)
        assert sorted(types(soft)) == ["ADVISORY", "GYM_SLOT_USED", "SHORTFALL", "SHORTFALL"]

    def test_violation_str(self):
        v = ConstraintViolation(ConstraintSeverity.HARD, "FTE_OVERBOOKED", "too much", staff="Ivy", slot=2)
        assert str(v) == "[HARD] FTE_OVERBOOKED | staff=Ivy | slot=2 | → too much"


class TestSnapshotValidation:

    def test_valid_snapshot(self, context):
        errors, warnings = ConstraintChecker(context).validate_snapshot()
        assert errors == []
        assert warnings == []

    def test_duplicate_ids(self, context):
        context.staff_pool.append(StaffAvailability(id="P1", name="Amy again", team="FO"))
        errors, _ = ConstraintChecker(context).validate_snapshot()
        assert errors == ["Duplicate staff ids in pool: ['P1']"]

    def test_unknown_team(self, context):
        context.team_demand["ICU"] = 1.0
        errors, _ = ConstraintChecker(context).validate_snapshot()
        assert "Unknown team in demand: ICU" in errors

    def test_non_floating_without_team_warned(self, context):
        context.staff_pool.append(StaffAvailability(id="P2", name="Ben"))
        _, warnings = ConstraintChecker(context).validate_snapshot()
        assert any("Ben" in w and "home team" in w for w in warnings)

    def test_program_without_tagged_staff_warned(self, context):
        context.weekday = "mon"
        context.special_programs = [SpecialProgram(id="c", name="CRP", weekdays=["mon"])]
        _, warnings = ConstraintChecker(context).validate_snapshot()
        assert warnings == ["Program CRP: no on-duty PCA tagged for it"]

    def test_unknown_program_is_error(self, context):
        context.special_programs = [SpecialProgram(id="x", name="Hydrotherapy")]
        errors, _ = ConstraintChecker(context).validate_snapshot()
        assert len(errors) == 1 and "Unknown special program" in errors[0]

    def test_unknown_preferred_pca_warned(self, context):
        context.team_preferences = {"FO": TeamPreference(team="FO", preferred_pca_ids=["Z9"])}
        _, warnings = ConstraintChecker(context).validate_snapshot()
        assert warnings == ["FO: preference names unknown PCA Z9"]

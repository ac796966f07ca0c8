"""
Tests for the special-program reservation phase and program demand helpers
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pca_allocator.engine import compute_allocation
from pca_allocator.matching import get_program_staff
from pca_allocator.models import (
    AllocationContext,
    SpecialProgram,
    StaffAvailability,
    TeamPreference,
)
from pca_allocator.special_programs import (
    compute_program_addons,
    compute_reserved_program_fte,
    format_program_error,
    reserve_special_programs,
)
from pca_allocator.tracker import AllocationBook


def floater(staff_id, programs=(), slots=(1, 2, 3, 4), **kw):
    kw.setdefault("base_fte", len(slots) * 0.25)
    return StaffAvailability(
        id=staff_id, name=staff_id, floating=True, available_slots=list(slots),
        special_programs=list(programs), **kw
    )


@pytest.fixture
def robotic():
    return SpecialProgram(id="prog-robotic", name="Robotic", weekdays=["mon"], staff_ids=["F1"])


def program_context(programs, pool, demand, weekday="mon", **kw):
    return AllocationContext(
        team_demand=demand,
        staff_pool=pool,
        phase="non-floating-with-special",
        weekday=weekday,
        special_programs=programs,
        **kw
    )


class TestReservation:

    def test_robotic_splits_across_teams(self, robotic):
        ctx = program_context([robotic], [floater("F1", ["robotic"])], {"SMM": 1.0, "SFM": 1.0})
        result = compute_allocation(ctx)
        allocation = result.allocation_for("F1")
        assert allocation.slots == {1: "SMM", 2: "SMM", 3: "SFM", 4: "SFM"}
        assert allocation.special_program_ids == ["prog-robotic"]
        assert result.team_assigned["SMM"] == 0.5
        assert result.team_assigned["SFM"] == 0.5
        assert {e.program_id for e in result.assignment_log} == {"prog-robotic"}

    def test_inactive_weekday_books_nothing(self, robotic):
        ctx = program_context([robotic], [floater("F1", ["robotic"])], {"SMM": 1.0}, weekday="tue")
        result = compute_allocation(ctx)
        assert result.allocation_for("F1") is None

    def test_crp_takes_slot_two_for_cppc(self):
        crp = SpecialProgram(id="prog-crp", name="CRP", weekdays=["mon"])
        ctx = program_context([crp], [floater("F2", ["crp"])], {"CPPC": 0.25})
        result = compute_allocation(ctx)
        assert result.allocation_for("F2").slots == {1: None, 2: "CPPC", 3: None, 4: None}

    def test_skipped_when_teams_already_covered(self, robotic):
        pool = [
            floater("F1", ["robotic"]),
            StaffAvailability(id="P1", name="P1", team="SMM"),
            StaffAvailability(id="P2", name="P2", team="SFM"),
        ]
        ctx = program_context([robotic], pool, {"SMM": 1.0, "SFM": 1.0})
        result = compute_allocation(ctx)
        assert result.allocation_for("F1") is None
        assert "special_program_allocation" not in result.errors

    def test_unfulfilled_program_is_advisory(self, robotic):
        ctx = program_context([robotic], [floater("F9")], {"SMM": 1.0})
        result = compute_allocation(ctx)
        assert result.errors["special_program_allocation"] == (
            "Unable to find PCA for special programs: Robotic"
        )

    def test_preference_order_wins(self):
        ortho = SpecialProgram(id="o", name="Ortho", weekdays=["mon"], team="FO", staff_ids=["F2", "F1"])
        pool = [floater("F1", ["ortho"]), floater("F2", ["ortho"])]
        result = compute_allocation(program_context([ortho], pool, {"FO": 1.0}))
        assert result.allocation_for("F1") is None
        assert result.allocation_for("F2").slots_for_team("FO") == [1, 2, 3, 4]

    def test_floating_tagged_before_non_floating(self):
        ortho = SpecialProgram(id="o", name="Ortho", weekdays=["mon"], team="FO")
        pool = [
            StaffAvailability(id="P1", name="P1", team="FO", available_slots=[1, 2], base_fte=0.5,
                              special_programs=["ortho"]),
            floater("F1", ["ortho"]),
        ]
        result = compute_allocation(program_context([ortho], pool, {"FO": 2.0}))
        assert "o" in result.allocation_for("F1").special_program_ids
        assert "o" not in result.allocation_for("P1").special_program_ids

    def test_gym_slot_dropped_from_program(self):
        ortho = SpecialProgram(id="o", name="Ortho", weekdays=["mon"], team="FO")
        ctx = program_context(
            [ortho], [floater("F1", ["ortho"])], {"FO": 1.0},
            team_preferences={"FO": TeamPreference(team="FO", gym_slot=3, avoid_gym=True)},
        )
        result = compute_allocation(ctx)
        assert result.allocation_for("F1").slots_for_team("FO") == [1, 2, 4]

    def test_capped_by_remaining_fte(self, robotic):
        ctx = program_context([robotic], [floater("F1", ["robotic"], base_fte=0.5)], {"SMM": 1.0, "SFM": 1.0})
        result = compute_allocation(ctx)
        allocation = result.allocation_for("F1")
        assert allocation.fte_assigned == 0.5
        assert allocation.slots_for_team("SMM") == [1, 2]

    def test_reentry_is_idempotent(self, robotic):
        ctx = program_context([robotic], [floater("F1", ["robotic"])], {"SMM": 1.0, "SFM": 1.0})
        book = AllocationBook(ctx)
        reserve_special_programs(book, "mon")
        assigned = dict(book.team_assigned)
        events = len(book.events)

        reserve_special_programs(book, "mon")
        assert book.team_assigned == assigned
        assert len(book.events) == events
        assert book.record("F1").special_program_ids == ["prog-robotic"]


class TestProgramHelpers:

    def test_format_program_error(self):
        assert format_program_error([]) is None
        assert format_program_error(["CRP", "Robotic"]) == (
            "Unable to find PCA for special programs: CRP, Robotic"
        )

    def test_drm_addon(self):
        drm = SpecialProgram(id="d", name="DRM", weekdays=["mon"])
        assert compute_program_addons([drm], "mon") == {"DRO": 0.4}
        assert compute_program_addons([drm], "tue") == {}

    def test_addon_override(self):
        drm = SpecialProgram(id="d", name="DRM", weekdays=["fri"], team="MC", addon_fte=0.25)
        assert compute_program_addons([drm], "fri") == {"MC": 0.25}

    def test_reserved_fte_counts_staffed_programs_only(self, robotic):
        crp = SpecialProgram(id="c", name="CRP", weekdays=["mon"])
        drm = SpecialProgram(id="d", name="DRM", weekdays=["mon"])
        assert compute_reserved_program_fte([robotic, crp, drm], "mon") == 1.25

    def test_program_staff_tagged_and_on_duty(self, robotic):
        pool = [
            floater("F1", ["prog-robotic"]),
            floater("F2"),
            floater("F3", ["Robotic"], is_available=False),
            StaffAvailability(id="P1", name="P1", team="SMM", special_programs=["robotic"]),
        ]
        assert [s.id for s in get_program_staff(pool, robotic)] == ["F1", "P1"]

"""
Tests for floating substitution of non-floating PCAs missing slots
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pca_allocator.engine import compute_allocation
from pca_allocator.models import (
    AllocationContext,
    DecisionLog,
    SpecialProgram,
    StaffAvailability,
    SubstitutionChoice,
    SubstitutionNeed,
    TeamPreference,
)
from pca_allocator.substitution import (
    collect_substitution_needs,
    format_substitution_error,
    rank_candidates,
)
from pca_allocator.tracker import AllocationBook


def fixed(staff_id, team, slots=(1, 2, 3, 4), **kw):
    kw.setdefault("base_fte", len(slots) * 0.25)
    kw.setdefault("name", staff_id)
    return StaffAvailability(id=staff_id, team=team, available_slots=list(slots), **kw)


def on_leave(staff_id, team, **kw):
    kw.setdefault("name", staff_id)
    return StaffAvailability(
        id=staff_id, team=team, available_slots=[], base_fte=0.0, is_available=False, **kw
    )


def floater(staff_id, slots=(1, 2, 3, 4), **kw):
    kw.setdefault("base_fte", len(slots) * 0.25)
    kw.setdefault("name", staff_id)
    return StaffAvailability(id=staff_id, floating=True, available_slots=list(slots), **kw)


def non_floating(demand, pool, **kw):
    return AllocationContext(team_demand=demand, staff_pool=pool, phase="non-floating", **kw)


class TestCover:

    def test_partial_need_covered_per_slot(self):
        ctx = non_floating({"SMM": 1.0}, [fixed("P1", "SMM", slots=(1, 2)), floater("F1")])
        result = compute_allocation(ctx)
        allocation = result.allocation_for("F1")
        assert allocation.slots == {1: None, 2: None, 3: "SMM", 4: "SMM"}
        assert allocation.substitution_for == {3: "P1", 4: "P1"}
        assert result.team_assigned["SMM"] == 1.0
        assert result.errors == {}

    def test_whole_day_need_covered(self):
        ctx = non_floating({"FO": 1.0}, [on_leave("P1", "FO"), floater("F1")])
        result = compute_allocation(ctx)
        assert result.allocation_for("F1").slots_for_team("FO") == [1, 2, 3, 4]
        assert result.allocation_for("P1") is None

    def test_whole_day_without_candidates(self):
        ctx = non_floating({"FO": 1.0}, [on_leave("P1", "FO", name="Amy")])
        result = compute_allocation(ctx)
        assert result.errors["missing_slot_substitution"] == (
            "No floating PCA available to substitute for Amy (FTE=0) in team FO"
        )

    def test_whole_day_block_beats_alphabetical_rank(self):
        pool = [
            on_leave("P1", "FO"),
            floater("F1", slots=(1, 2), name="Ann"),
            floater("F2", name="Bob"),
        ]
        result = compute_allocation(non_floating({"FO": 1.0}, pool))
        assert result.allocation_for("F1") is None
        assert result.allocation_for("F2").substitution_for == {1: "P1", 2: "P1", 3: "P1", 4: "P1"}

    def test_whole_day_never_split_across_floaters(self):
        pool = [
            on_leave("P1", "FO"),
            floater("F1", slots=(1, 2), name="Ann"),
            floater("F2", slots=(3, 4), name="Bob"),
        ]
        result = compute_allocation(non_floating({"FO": 1.0}, pool))
        assert result.allocation_for("F1") is None
        assert result.allocation_for("F2") is None
        assert result.errors["missing_slot_substitution"] == (
            "No floating PCA available to substitute for P1 (FTE=0) in team FO"
        )

    def test_partly_free_floater_leaves_whole_day_uncovered(self):
        pool = [on_leave("P1", "FO", name="Amy"), floater("F1", slots=(1, 2))]
        result = compute_allocation(non_floating({"FO": 1.0}, pool))
        assert result.allocation_for("F1") is None
        assert result.errors["missing_slot_substitution"] == (
            "No floating PCA available to substitute for Amy (FTE=0) in team FO"
        )

    def test_program_reserved_floater_not_a_whole_day_substitute(self):
        crp = SpecialProgram(id="prog-crp", name="CRP", weekdays=["mon"])
        ctx = AllocationContext(
            team_demand={"FO": 1.0, "CPPC": 0.25},
            staff_pool=[on_leave("N1", "FO"), floater("F1", special_programs=["crp"])],
            phase="non-floating-with-special",
            weekday="mon",
            special_programs=[crp],
        )
        result = compute_allocation(ctx)
        allocation = result.allocation_for("F1")
        assert allocation.slots == {1: None, 2: "CPPC", 3: None, 4: None}
        assert allocation.substitution_for == {}
        assert result.errors["missing_slot_substitution"] == (
            "No floating PCA available to substitute for N1 (FTE=0) in team FO"
        )

    def test_whole_day_choice_must_cover_every_slot(self):
        pool = [on_leave("P1", "FO"), floater("F1", name="Ann"), floater("F2", name="Bob")]
        decisions = DecisionLog(substitutions={"P1": SubstitutionChoice(staff_id="F2", slots=[1, 2])})
        result = compute_allocation(non_floating({"FO": 1.0}, pool), decisions)
        assert result.allocation_for("F2") is None
        assert result.allocation_for("F1").substitution_for == {1: "P1", 2: "P1", 3: "P1", 4: "P1"}

    def test_program_slots_not_offered(self):
        robotic = SpecialProgram(id="r", name="Robotic", weekdays=["mon"])
        pool = [
            fixed("P1", "SMM", slots=(1,)),
            floater("F1", special_programs=["robotic"]),
        ]
        ctx = AllocationContext(
            team_demand={"SMM": 1.0, "SFM": 1.0},
            staff_pool=pool,
            phase="non-floating-with-special",
            weekday="mon",
            special_programs=[robotic],
        )
        result = compute_allocation(ctx)
        allocation = result.allocation_for("F1")
        # the program holds all four of F1's slots, so nothing is left to cover with
        assert allocation.substitution_for == {}
        assert "P1 (SMM): slots 2, 3, 4" in result.errors["missing_slot_substitution"]

    def test_caller_choice_applied(self):
        pool = [fixed("P1", "SMM", slots=(1, 2)), floater("F1", name="Ann"), floater("F2", name="Bob")]
        decisions = DecisionLog(substitutions={"P1": SubstitutionChoice(staff_id="F2", slots=[3, 4])})
        result = compute_allocation(non_floating({"SMM": 1.0}, pool), decisions)
        assert result.allocation_for("F1") is None
        assert result.allocation_for("F2").substitution_for == {3: "P1", 4: "P1"}

    def test_bad_caller_choice_falls_back_to_automatic(self):
        pool = [fixed("P1", "SMM", slots=(1, 2)), floater("F1")]
        decisions = DecisionLog(substitutions={"P1": SubstitutionChoice(staff_id="P1", slots=[3, 4])})
        result = compute_allocation(non_floating({"SMM": 1.0}, pool), decisions)
        assert result.allocation_for("F1").substitution_for == {3: "P1", 4: "P1"}


class TestRanking:

    @pytest.fixture
    def book(self):
        pool = [
            on_leave("P1", "FO"),
            floater("F1", name="Zed", floor_pca=["upper"]),
            floater("F2", name="amy"),
            floater("F3", name="Moe"),
            floater("F4", name="Bea"),
        ]
        ctx = non_floating(
            {"FO": 1.0}, pool,
            team_preferences={"FO": TeamPreference(team="FO", preferred_pca_ids=["F3"], floor="upper")},
        )
        return AllocationBook(ctx)

    def test_tiers_then_name(self, book):
        need = SubstitutionNeed(staff_id="P1", staff_name="P1", team="FO", slots=[1, 2, 3, 4], whole_day=True)
        ranked = rank_candidates(book, need, need.slots)
        assert [c.staff_id for c in ranked] == ["F3", "F1", "F2", "F4"]
        assert ranked[0].preferred and not ranked[0].floor_match
        assert ranked[1].floor_match

    def test_whole_day_needs_listed_first(self):
        pool = [fixed("P1", "SMM", slots=(1, 2)), on_leave("P2", "FO"), floater("F1")]
        needs = collect_substitution_needs(AllocationBook(non_floating({"FO": 1.0, "SMM": 1.0}, pool)))
        assert [n.staff_id for n in needs] == ["P2", "P1"]
        assert needs[0].whole_day and not needs[1].whole_day
        assert needs[1].slots == [3, 4]


class TestErrorText:

    def test_both_kinds_joined(self):
        whole = SubstitutionNeed("P1", "Amy", "FO", [1, 2, 3, 4], whole_day=True)
        partial = SubstitutionNeed("P2", "Ben", "SMM", [3, 4], whole_day=False)
        message = format_substitution_error([(whole, [1, 2, 3, 4]), (partial, [4])])
        assert message == (
            "No floating PCA available to substitute for Amy (FTE=0) in team FO; "
            "Unable to find floating PCA substitutes for missing slots: Ben (SMM): slots 4"
        )

    def test_nothing_unresolved(self):
        assert format_substitution_error([]) is None

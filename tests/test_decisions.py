"""
Tests for the two-step decision API: compute_allocation() pauses with a
PendingDecision, resume() answers it, allocate() drives async hooks.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pca_allocator.engine import (
    allocate,
    compute_allocation,
    normalize_result,
    resume,
    run_phases_separately,
)
from pca_allocator.models import (
    AllocationContext,
    AllocationResult,
    DecisionKind,
    DecisionLog,
    PendingDecision,
    StaffAvailability,
)


def fixed(staff_id, team, slots=(1, 2, 3, 4)):
    return StaffAvailability(
        id=staff_id, name=staff_id, team=team, available_slots=list(slots), base_fte=len(slots) * 0.25
    )


def floater(staff_id, name):
    return StaffAvailability(id=staff_id, name=name, floating=True)


@pytest.fixture
def substitution_context():
    return AllocationContext(
        team_demand={"SMM": 1.0},
        staff_pool=[fixed("P1", "SMM", slots=(1, 2)), floater("F1", "Ann"), floater("F2", "Bob")],
        phase="non-floating",
        ask_substitution=True,
    )


@pytest.fixture
def two_decision_context():
    return AllocationContext(
        team_demand={"SMM": 1.0, "FO": 0.5, "MC": 0.5},
        staff_pool=[fixed("P1", "SMM", slots=(1, 2)), floater("F1", "Ann"), floater("F2", "Bob")],
    )


class TestSubstitutionDecision:

    def test_pauses_with_needs(self, substitution_context):
        outcome = compute_allocation(substitution_context)
        assert isinstance(outcome, PendingDecision)
        assert outcome.kind is DecisionKind.SUBSTITUTION
        assert [n.staff_id for n in outcome.needs] == ["P1"]
        assert [c.staff_id for c in outcome.needs[0].candidates] == ["F1", "F2"]
        assert outcome.needs[0].candidates[0].coverable_slots == [3, 4]

    def test_resume_with_choice(self, substitution_context):
        pending = compute_allocation(substitution_context)
        result = resume(pending, {"P1": {"staff_id": "F2", "slots": [3, 4]}})
        assert isinstance(result, AllocationResult)
        assert result.allocation_for("F1") is None
        assert result.allocation_for("F2").substitution_for == {3: "P1", 4: "P1"}

    def test_resume_without_choice_is_automatic(self, substitution_context):
        pending = compute_allocation(substitution_context)
        result = resume(pending, None)
        assert result.allocation_for("F1").substitution_for == {3: "P1", 4: "P1"}

    def test_no_needs_no_pause(self):
        ctx = AllocationContext(
            team_demand={"FO": 1.0},
            staff_pool=[fixed("P1", "FO")],
            phase="non-floating",
            ask_substitution=True,
        )
        assert isinstance(compute_allocation(ctx), AllocationResult)


class TestTieBreakDecision:

    @pytest.fixture
    def tie_context(self):
        return AllocationContext(
            team_demand={"FO": 0.5, "SMM": 0.5},
            staff_pool=[floater("F1", "Ann")],
            ask_tie_break=True,
        )

    def test_pauses_with_tied_teams(self, tie_context):
        outcome = compute_allocation(tie_context)
        assert outcome.kind is DecisionKind.TIE_BREAK
        assert outcome.tied_teams == ["FO", "SMM"]
        assert outcome.tied_value == 0.5

    def test_resume_with_team(self, tie_context):
        result = resume(compute_allocation(tie_context), "SMM")
        assert result.allocation_for("F1").slots == {1: "SMM", 2: "SMM", 3: "FO", 4: "FO"}

    def test_answer_outside_tie_falls_back(self, tie_context):
        result = resume(compute_allocation(tie_context), "DRO")
        assert result.allocation_for("F1").slots_for_team("FO") == [1, 2]

    def test_pending_decision_not_mutated_by_resume(self, tie_context):
        pending = compute_allocation(tie_context)
        resume(pending, "SMM")
        assert pending.decisions.tie_breaks == []


class TestSplitPhaseDecisions:

    @pytest.fixture
    def split_context(self):
        return AllocationContext(
            team_demand={"FO": 1.0, "SMM": 0.5, "SFM": 0.5},
            staff_pool=[fixed("P1", "FO"), floater("F1", "Ann")],
            ask_tie_break=True,
        )

    def test_tie_in_floating_call_resumes_both_calls(self, split_context):
        pending = run_phases_separately(split_context)
        assert pending.kind is DecisionKind.TIE_BREAK
        assert pending.split_phases
        assert pending.context is split_context

        result = resume(pending, "SMM")
        assert isinstance(result, AllocationResult)
        assert result.allocation_for("F1").slots == {1: "SMM", 2: "SMM", 3: "SFM", 4: "SFM"}
        phases = {e.phase for e in result.assignment_log}
        assert {"non_floating", "floating"} <= phases
        assert normalize_result(result) == normalize_result(compute_allocation(
            split_context, DecisionLog(tie_breaks=["SMM"])
        ))

    def test_substitution_in_first_call_keeps_merge(self):
        ctx = AllocationContext(
            team_demand={"SMM": 1.0, "FO": 0.5},
            staff_pool=[fixed("P1", "SMM", slots=(1, 2)), floater("F1", "Ann"), floater("F2", "Bob")],
            ask_substitution=True,
        )
        pending = run_phases_separately(ctx)
        assert pending.kind is DecisionKind.SUBSTITUTION and pending.split_phases

        result = resume(pending, {"P1": {"staff_id": "F2", "slots": [3, 4]}})
        assert result.allocation_for("F2").substitution_for == {3: "P1", 4: "P1"}
        phases = [e.phase for e in result.assignment_log]
        assert phases.index("substitution") < phases.index("floating")


class TestAsyncAllocate:

    def test_hooks_called_in_order(self, two_decision_context):
        calls = []

        async def on_substitution(needs):
            calls.append(("substitution", [n.staff_id for n in needs]))
            return None

        async def on_tie_break(teams, value):
            calls.append(("tie_break", teams, value))
            return "MC"

        result = asyncio.run(allocate(two_decision_context, on_substitution, on_tie_break))

        assert calls == [("substitution", ["P1"]), ("tie_break", ["FO", "MC"], 0.5)]
        assert result.allocation_for("F1").slots == {1: "FO", 2: "FO", 3: "SMM", 4: "SMM"}
        assert result.allocation_for("F2").slots == {1: "MC", 2: "MC", 3: None, 4: None}
        assert two_decision_context.ask_tie_break is False

    def test_no_hooks_matches_compute(self, two_decision_context):
        result = asyncio.run(allocate(two_decision_context))
        assert normalize_result(result) == normalize_result(compute_allocation(two_decision_context))

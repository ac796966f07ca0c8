"""
dry_run.py — Run one day's PCA allocation from config files

Full orchestration:
  1. Load snapshot (staff pool, demand, preferences, programs)
  2. Validate snapshot (structure, unknown teams, untagged programs)
  3. Run the allocation engine (optionally prompting for decisions)
  4. Check allocation constraints (hard + soft)
  5. Export CSV, Excel, shortfall report, assignment log
  6. Print summary to console

Usage:
  python -m pca_allocator.dry_run --date 2026-03-02
  python -m pca_allocator.dry_run --date 2026-03-02 --interactive --visual
  python -m pca_allocator.dry_run --date 2026-03-02 --phase non-floating-with-special --state-out state.json
  python -m pca_allocator.dry_run --date 2026-03-02 --phase floating --state-in state.json
"""

import argparse
import dataclasses
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pca_allocator.allocation_config import PHASE_FLOATING, PHASES, SLOT_TIMES
from pca_allocator.config import load_phase_state, load_snapshot, save_phase_state
from pca_allocator.constraints import ConstraintChecker
from pca_allocator.engine import calculate_coverage_metrics, compute_allocation, resume
from pca_allocator.exporter import (
    export_assignment_log,
    export_shortfall_report,
    export_to_csv,
    export_to_excel,
)
from pca_allocator.models import (
    AllocationResult,
    DecisionKind,
    InsufficientStaffingError,
    PendingDecision,
    SubstitutionChoice,
    SubstitutionNeed,
)
from pca_allocator.rounding import format_fte

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUTS_DIR = PROJECT_ROOT / "outputs"


# ---------------------------------------------------------------------------
# Interactive decisions
# ---------------------------------------------------------------------------

def _ask(prompt: str) -> str:
    """Read one answer; non-interactive environments answer blank."""
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        return ""


def _prompt_substitution(needs: List[SubstitutionNeed]) -> Dict[str, SubstitutionChoice]:
    choices: Dict[str, SubstitutionChoice] = {}
    for need in needs:
        kind = "whole day" if need.whole_day else f"slots {need.slots}"
        print(f"\n▶ {need.staff_name} ({need.team}) needs cover: {kind}")
        if not need.candidates:
            print("    no floating PCA can cover")
            continue
        for i, c in enumerate(need.candidates, start=1):
            tags = ", ".join(t for t, on in (("preferred", c.preferred), ("floor", c.floor_match)) if on)
            print(f"    [{i}] {c.staff_name:<20} slots {c.coverable_slots}{f'  ({tags})' if tags else ''}")
        ans = _ask("  Choose candidate number [Enter = automatic]: ")
        if ans.isdigit() and 1 <= int(ans) <= len(need.candidates):
            c = need.candidates[int(ans) - 1]
            choices[need.staff_id] = SubstitutionChoice(staff_id=c.staff_id, slots=c.coverable_slots)
    return choices


def _prompt_tie_break(teams: List[str], value: float) -> Optional[str]:
    print(f"\n▶ Teams tied at {format_fte(value)} pending FTE: {', '.join(teams)}")
    ans = _ask(f"  Which team goes first? [Enter = {teams[0]}]: ").upper()
    return ans if ans in teams else None


def _run_engine(context: Any, interactive: bool) -> AllocationResult:
    if not interactive:
        return compute_allocation(context)

    context = dataclasses.replace(context, ask_substitution=True, ask_tie_break=True)
    outcome = compute_allocation(context)
    while isinstance(outcome, PendingDecision):
        if outcome.kind is DecisionKind.SUBSTITUTION:
            answer: Any = _prompt_substitution(outcome.needs)
        else:
            answer = _prompt_tie_break(outcome.tied_teams, outcome.tied_value)
        outcome = resume(outcome, answer)
    return outcome


# ---------------------------------------------------------------------------
# Visual analysis (matplotlib)
# ---------------------------------------------------------------------------

def _generate_visual_analysis(
    metrics: Dict[str, Any],
    output_dir: Path,
    prefix: str,
) -> Path:
    """Demand vs assigned bar chart per team, pending stacked on top."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    teams = sorted(metrics["teams"])
    demand = [metrics["teams"][t]["demand"] for t in teams]
    assigned = [metrics["teams"][t]["assigned"] for t in teams]
    pending = [metrics["teams"][t]["pending"] for t in teams]
    x = range(len(teams))

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(x, assigned, color="#4a90d9", alpha=0.85, width=0.6, label="Assigned")
    ax.bar(x, pending, bottom=assigned, color="#b22222", alpha=0.75, width=0.6, label="Pending")
    ax.scatter(list(x), demand, color="black", marker="_", s=600, label="Demand", zorder=3)
    for i, val in enumerate(assigned):
        ax.text(i, val + pending[i] + 0.05, format_fte(val), ha="center", va="bottom", fontsize=8)
    ax.set_xticks(list(x))
    ax.set_xticklabels(teams)
    ax.set_ylabel("PCA FTE")
    ax.set_title("PCA Demand vs Assigned by Team (dry_run)", fontsize=13, fontweight="bold")
    ax.legend()
    ax.grid(axis="y", alpha=0.3)
    fig.tight_layout()
    out = Path(output_dir) / f"{prefix}_coverage.png"
    fig.savefig(out, dpi=150)
    plt.close(fig)
    print(f"  ✓ Visual  → {out.name}")
    return out


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_dry_run(
    target_date: date,
    phase: str = "all",
    config_dir: Optional[Path] = None,
    output_dir: Path = OUTPUTS_DIR,
    interactive: bool = False,
    visual: bool = False,
    team_order: Optional[List[str]] = None,
    apply_addons: bool = False,
    state_in: Optional[Path] = None,
    state_out: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Allocate one day and export everything.

    Returns:
        Dict with result, metrics, violations, fatal_error, output paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"pca_{target_date}_{phase}"
    sep = "=" * 70

    print(f"\n{sep}")
    print(f"  PCA ALLOCATION DRY RUN")
    print(f"  Date: {target_date}  |  Phase: {phase}")
    print(f"{sep}\n")

    # ── 1. Load snapshot ───────────────────────────────────────────────────
    print("Step 1/5: Loading snapshot...")
    context = load_snapshot(target_date, phase=phase, config_dir=config_dir, apply_addons=apply_addons)
    if team_order:
        context.user_team_order = team_order
    if phase == PHASE_FLOATING and state_in:
        context.existing_allocations, context.existing_team_assigned = load_phase_state(state_in)
    floating = sum(1 for s in context.staff_pool if s.floating)
    print(
        f"  ✓ {len(context.staff_pool)} PCAs ({floating} floating) | "
        f"{len(context.team_demand)} teams | {len(context.special_programs)} programs | {context.weekday}"
    )

    # ── 2. Validate ────────────────────────────────────────────────────────
    print("\nStep 2/5: Validating snapshot...")
    checker = ConstraintChecker(context)
    errors, warnings = checker.validate_snapshot()
    for err in errors:
        print(f"  ✗ SNAPSHOT ERROR: {err}")
    for w in warnings:
        print(f"  ⚠ WARNING: {w}")
    if errors:
        print("\n  ✗ Cannot proceed — fix snapshot errors above.")
        sys.exit(1)
    if not warnings:
        print("  ✓ Snapshot valid")

    # ── 3. Allocate ────────────────────────────────────────────────────────
    print("\nStep 3/5: Running allocation...")
    fatal_error: Optional[str] = None
    try:
        result = _run_engine(context, interactive)
    except InsufficientStaffingError as e:
        fatal_error = str(e)
        result = e.result
        print(f"  ✗ FATAL: {fatal_error}")
    print(f"  ✓ {len(result.allocations)} allocation records | {format_fte(result.total_assigned_fte)} FTE assigned")
    for key, message in result.errors.items():
        print(f"  ⚠ {key}: {message}")

    if state_out:
        save_phase_state(result, Path(state_out))
        print(f"  ✓ Phase state saved: {state_out}")

    # ── 4. Constraints ─────────────────────────────────────────────────────
    print("\nStep 4/5: Checking constraints...")
    hard, soft = checker.check_all(result)
    status = "✓" if not hard else "✗"
    print(f"  {status} Hard violations: {len(hard)}")
    print(f"    Soft violations: {len(soft)}")

    # ── 5. Export ──────────────────────────────────────────────────────────
    print("\nStep 5/5: Exporting outputs...")
    metrics = calculate_coverage_metrics(result, context.team_demand)

    csv_path    = output_dir / f"{prefix}_allocation.csv"
    xlsx_path   = output_dir / f"{prefix}_allocation.xlsx"
    report_path = output_dir / f"{prefix}_report.txt"
    log_path    = output_dir / f"{prefix}_assignment_log.json"

    export_to_csv(result, csv_path)
    export_to_excel(result, xlsx_path, team_demand=context.team_demand)
    export_shortfall_report(result, metrics, report_path, violations=hard + soft, label=str(target_date))
    export_assignment_log(result, log_path)

    print(f"  ✓ CSV:       {csv_path.name}")
    print(f"  ✓ Excel:     {xlsx_path.name}")
    print(f"  ✓ Report:    {report_path.name}")
    print(f"  ✓ Log:       {log_path.name}")

    # ── Summary ────────────────────────────────────────────────────────────
    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Demand:    {format_fte(metrics['total_demand'])} FTE")
    print(f"  Assigned:  {format_fte(metrics['total_assigned'])} FTE")
    print(f"  Pending:   {format_fte(metrics['total_pending'])} FTE")
    for team, t in sorted(metrics["teams"].items()):
        icon = "✓" if t["pending"] <= 0 else "✗"
        print(f"    {team:<6} {format_fte(t['assigned']):>6} / {format_fte(t['demand']):<6} {icon}")
    print(f"\n  Slot times: " + ", ".join(f"{s}={t}" for s, t in SLOT_TIMES.items()))

    visual_path = None
    if visual:
        visual_path = _generate_visual_analysis(metrics, output_dir, prefix)

    print(f"\n{sep}\n")

    return {
        "result":          result,
        "metrics":         metrics,
        "hard_violations": hard,
        "soft_violations": soft,
        "fatal_error":     fatal_error,
        "outputs": {
            "csv":    csv_path,
            "excel":  xlsx_path,
            "report": report_path,
            "log":    log_path,
            "visual": visual_path,
        },
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(description="Dry-run PCA allocation for one day")
    parser.add_argument("--date",         default=None, help="Date YYYY-MM-DD (default: today)")
    parser.add_argument("--phase",        default="all", choices=PHASES, help="Phase to run")
    parser.add_argument("--config-dir",   default=None, help="Snapshot directory (default: config/)")
    parser.add_argument("--output-dir",   default=None, help="Output directory (default: outputs/)")
    parser.add_argument("--interactive",  action="store_true", help="Prompt for substitutions and tie-breaks")
    parser.add_argument("--visual",       action="store_true", help="Generate matplotlib coverage chart")
    parser.add_argument("--team-order",   default=None, help="Comma-separated team priority, e.g. FO,SMM")
    parser.add_argument("--apply-addons", action="store_true", help="Add add-on program FTE to demand")
    parser.add_argument("--state-in",     default=None, help="Phase state JSON to seed a floating run")
    parser.add_argument("--state-out",    default=None, help="Write this run's phase state JSON")
    args = parser.parse_args()

    try:
        target = datetime.strptime(args.date, "%Y-%m-%d").date() if args.date else date.today()
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    if args.phase == PHASE_FLOATING and not args.state_in:
        print("Error: --phase floating needs --state-in from a non-floating run")
        sys.exit(1)

    outcome = run_dry_run(
        target,
        phase=args.phase,
        config_dir=Path(args.config_dir) if args.config_dir else None,
        output_dir=Path(args.output_dir) if args.output_dir else OUTPUTS_DIR,
        interactive=args.interactive,
        visual=args.visual,
        team_order=[t.strip().upper() for t in args.team_order.split(",")] if args.team_order else None,
        apply_addons=args.apply_addons,
        state_in=Path(args.state_in) if args.state_in else None,
        state_out=Path(args.state_out) if args.state_out else None,
    )
    if outcome["fatal_error"]:
        sys.exit(2)


if __name__ == "__main__":
    main()

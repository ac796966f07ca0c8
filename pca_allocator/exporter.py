"""
exporter.py — Export Layer for PCA Allocation

Outputs:
  - CSV: flat (staff, slot, time, team, kind) rows for programmatic review
  - Excel (.xlsx): staff × slot grid with team names in the cells, plus a
    team coverage sheet
  - Shortfall report (.txt): per-team demand / assigned / pending, advisory
    errors and constraint violations
  - Assignment log (.json): every slot binding with its phase and flags

Usage:
  from pca_allocator.exporter import (
      export_to_csv, export_to_excel, export_shortfall_report, export_assignment_log,
  )
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from pca_allocator.allocation_config import ALL_SLOTS, SLOT_TIMES
from pca_allocator.models import AllocationResult
from pca_allocator.rounding import format_fte

logger = logging.getLogger(__name__)


def _slot_kind(allocation: Any, slot: int, program_slots: Optional[Set[Tuple[str, int]]] = None) -> str:
    if slot == allocation.invalid_slot:
        return "invalid"
    if slot in allocation.substitution_for:
        return "substitution"
    if program_slots is not None:
        return "program" if (allocation.staff_id, slot) in program_slots else "regular"
    if allocation.special_program_ids and allocation.team is None:
        return "program"
    return "regular"


def allocation_rows(result: AllocationResult) -> List[Dict[str, Any]]:
    # a seeded floating run has no log for earlier phases; fall back to the record
    program_slots = None
    if any(e.phase not in ("reservation", "floating", "bundling") for e in result.assignment_log):
        program_slots = {(e.staff_id, e.slot) for e in result.assignment_log if e.program_id}

    rows = []
    for a in result.allocations:
        for slot in ALL_SLOTS:
            team = a.slot_team(slot)
            if team is None:
                continue
            rows.append({
                "staff_id": a.staff_id,
                "staff": a.staff_name,
                "home_team": a.team or "",
                "slot": slot,
                "time": SLOT_TIMES[slot],
                "team": team,
                "kind": _slot_kind(a, slot, program_slots),
                "covers": a.substitution_for.get(slot, ""),
                "programs": ";".join(a.special_program_ids),
            })
    return rows


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_to_csv(result: AllocationResult, output_path: Path) -> None:
    """One row per bound staff-slot."""
    import csv
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames = ["staff_id", "staff", "home_team", "slot", "time", "team", "kind", "covers", "programs"]
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for row in allocation_rows(result):
            writer.writerow(row)

    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_to_excel(
    result: AllocationResult,
    output_path: Path,
    team_demand: Optional[Dict[str, float]] = None,
) -> None:
    """
    Staff × slot grid (cells = team) on sheet "Allocation", and per-team
    demand / assigned / pending on sheet "Teams".
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = allocation_rows(result)
    df = pd.DataFrame(rows)
    if df.empty:
        df.to_excel(output_path, index=False)
        return

    df["column"] = df["slot"].map(lambda s: f"{s} ({SLOT_TIMES[s]})")
    grid = df.pivot_table(
        index="staff",
        columns="column",
        values="team",
        aggfunc=lambda x: "; ".join(x),
    )
    grid = grid.reindex(columns=[f"{s} ({SLOT_TIMES[s]})" for s in ALL_SLOTS]).fillna("")

    demand = team_demand or {}
    teams = sorted(set(result.team_assigned) | set(demand))
    coverage = pd.DataFrame([
        {
            "Team": team,
            "Demand": demand.get(team, 0.0),
            "Assigned": result.team_assigned.get(team, 0.0),
            "Pending": result.pending_fte.get(team, 0.0),
        }
        for team in teams
    ])

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        grid.to_excel(writer, sheet_name="Allocation")
        _format_excel_grid(writer, "Allocation")
        coverage.to_excel(writer, sheet_name="Teams", index=False)
        _format_excel_grid(writer, "Teams")

    logger.info(f"Excel exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Header colours, column widths and alternate row shading."""
    try:
        from openpyxl.styles import Alignment, Font, PatternFill
        ws = writer.sheets[sheet_name]
        header_fill = PatternFill("solid", fgColor="1F4E79")
        header_font = Font(bold=True, color="FFFFFF")

        for cell in ws[1]:
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center")

        for col in ws.columns:
            max_len = max((len(str(c.value)) for c in col if c.value), default=8)
            ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 30)

        alt = PatternFill("solid", fgColor="EBF3FB")
        for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
            if i % 2 == 0:
                for cell in row:
                    cell.fill = alt

    except Exception as e:
        logger.warning(f"Excel formatting failed (non-critical): {e}")


# ---------------------------------------------------------------------------
# Shortfall Report
# ---------------------------------------------------------------------------

def export_shortfall_report(
    result: AllocationResult,
    metrics: Dict[str, Any],
    output_path: Path,
    violations: Optional[List[Any]] = None,
    label: str = "",
) -> None:
    """
    Text report: per-team coverage, per-PCA slot count, advisory errors.

    Args:
        result:      AllocationResult from the engine
        metrics:     Output of engine.calculate_coverage_metrics()
        output_path: .txt file path
        violations:  ConstraintViolation list to append (optional)
        label:       Heading suffix (e.g. the date)
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    sep = "=" * 70
    rule = "─" * 70

    lines = [
        sep,
        f"  PCA ALLOCATION REPORT{(' — ' + label) if label else ''}",
        sep,
        "",
        f"  Phase:            {result.phase}",
        f"  Total demand:     {format_fte(metrics['total_demand'])} FTE",
        f"  Total assigned:   {format_fte(metrics['total_assigned'])} FTE",
        f"  Total pending:    {format_fte(metrics['total_pending'])} FTE",
        "",
        rule,
        "  Per-Team Coverage",
        rule,
        f"  {'Team':<8} {'Demand':>8} {'Assigned':>9} {'Pending':>8} {'Cover':>7}",
    ]
    for team, t in sorted(metrics["teams"].items()):
        flag = "  ← short" if t["pending"] > 0 else ""
        lines.append(
            f"  {team:<8} {format_fte(t['demand']):>8} {format_fte(t['assigned']):>9} "
            f"{format_fte(t['pending']):>8} {t['coverage_pct']:>6.1f}%{flag}"
        )

    lines += ["", rule, "  Per-PCA Slots", rule]
    for a in result.allocations:
        slots = " ".join(f"{s}:{a.slot_team(s) or '-'}" for s in ALL_SLOTS)
        lines.append(f"  {a.staff_name:<20} {slots}   remaining {format_fte(a.fte_remaining)}")

    lines += ["", rule, "  Advisory Errors", rule]
    if result.errors:
        for key, message in result.errors.items():
            lines.append(f"  [{key}] {message}")
    else:
        lines.append("  (none)")

    if violations is not None:
        lines += ["", rule, f"  Constraint Violations ({len(violations)})", rule]
        lines += [f"  {v}" for v in violations] or ["  (none)"]

    lines += ["", sep]
    output_path.write_text("\n".join(lines) + "\n")
    logger.info(f"Shortfall report exported → {output_path}")


# ---------------------------------------------------------------------------
# Assignment log
# ---------------------------------------------------------------------------

def export_assignment_log(result: AllocationResult, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "phase": result.phase,
        "events": [e.to_dict() for e in result.assignment_log],
        "team_summaries": result.team_summaries(),
    }
    with open(output_path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Assignment log exported → {output_path}")

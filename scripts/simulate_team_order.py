"""
simulate_team_order.py — Find the floating fill-in team order that
minimises unmet PCA demand for one day.

Strategy:
  Without a team order the engine serves the team with the largest pending
  FTE first. A fixed order replaces that rule, so a bad order can leave a
  team short that the default would have covered, and vice versa.

  8! orderings is only 40320, but each run replays the whole day, so a
  greedy local search is used instead: start from the fixed team order,
  try swapping each pair, keep the best swap and repeat until nothing
  improves.

Usage:
  python3 scripts/simulate_team_order.py --date 2026-03-02
"""

import argparse
import itertools
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pca_allocator.allocation_config import TEAMS
from pca_allocator.config import load_snapshot
from pca_allocator.engine import calculate_coverage_metrics, compute_allocation
from pca_allocator.models import AllocationContext, InsufficientStaffingError

logging.basicConfig(level=logging.CRITICAL)
logger = logging.getLogger(__name__)


def _run_one(context: AllocationContext, team_order: Optional[List[str]]) -> Tuple[float, int, bool]:
    """Run the day with `team_order`; return (total_pending, short_teams, fatal)."""
    context.user_team_order = team_order
    fatal = False
    try:
        result = compute_allocation(context)
    except InsufficientStaffingError as e:
        result = e.result
        fatal = True
    metrics = calculate_coverage_metrics(result, context.team_demand)
    return metrics["total_pending"], len(metrics["shortfall_teams"]), fatal


def _score(pending: float, short: int, fatal: bool) -> Tuple[int, float, int]:
    return (1 if fatal else 0, round(pending, 4), short)


def main():
    parser = argparse.ArgumentParser(description="Simulate floating fill-in team orders")
    parser.add_argument("--date",       required=True, help="Date YYYY-MM-DD")
    parser.add_argument("--config-dir", default=None, help="Snapshot directory (default: config/)")
    parser.add_argument("--max-swaps",  type=int, default=200,
                        help="Max swap evaluations (default 200)")
    args = parser.parse_args()

    target = datetime.strptime(args.date, "%Y-%m-%d").date()
    context = load_snapshot(target, config_dir=Path(args.config_dir) if args.config_dir else None)
    teams = [t for t in TEAMS if t in context.team_demand]

    sep = "=" * 70
    print(f"\n{sep}")
    print(f"  TEAM ORDER SIMULATION")
    print(f"  Date: {target} ({context.weekday})")
    print(f"  Teams to reorder: {len(teams)}")
    print(f"{sep}\n")

    print("--- Default (largest pending first) ---")
    pending, short, fatal = _run_one(context, None)
    print(f"  Pending: {pending:.2f}  |  Short teams: {short}  |  Fatal: {fatal}")
    default_score = _score(pending, short, fatal)

    current_order = list(teams)
    print("\n--- Baseline (fixed team order) ---")
    t0 = time.time()
    best_pending, best_short, best_fatal = _run_one(context, current_order)
    print(
        f"  Pending: {best_pending:.2f}  |  Short teams: {best_short}  |  "
        f"Fatal: {best_fatal}  ({time.time() - t0:.2f}s)"
    )
    best_order = list(current_order)

    print(f"\n--- Greedy swap search (max {args.max_swaps} evals) ---")
    improved = True
    total_evals = 0
    pass_num = 0

    while improved:
        improved = False
        pass_num += 1
        print(f"\n  Pass {pass_num}:")

        for i, j in itertools.combinations(range(len(teams)), 2):
            if total_evals >= args.max_swaps:
                break
            candidate = list(best_order)
            candidate[i], candidate[j] = candidate[j], candidate[i]

            pending, short, fatal = _run_one(context, candidate)
            total_evals += 1

            marker = ""
            if _score(pending, short, fatal) < _score(best_pending, best_short, best_fatal):
                best_pending, best_short, best_fatal = pending, short, fatal
                best_order = candidate
                improved = True
                marker = " *** NEW BEST ***"

            print(
                f"    [{total_evals:3d}] swap({candidate[i]},{candidate[j]}) "
                f"pending={pending:5.2f}  short={short}  fatal={fatal}{marker}"
            )

        if total_evals >= args.max_swaps:
            print(f"\n  Reached max evaluations ({args.max_swaps})")
            break

    print(f"\n{sep}")
    print(f"  SIMULATION RESULTS")
    print(sep)
    print(f"  Total evaluations: {total_evals}")
    print(f"  Best pending:      {best_pending:.2f}")
    print(f"  Best short teams:  {best_short}")
    print(f"  Fatal:             {best_fatal}")
    if _score(best_pending, best_short, best_fatal) >= default_score:
        print("\n  No order beats the default largest-pending-first rule.")
    print(f"\n  Best team order: {','.join(best_order)}")
    for rank, team in enumerate(best_order):
        moved = "" if current_order[rank] == team else f"  (was #{current_order.index(team) + 1})"
        print(f"    {rank + 1}. {team}{moved}")
    print(f"\n{sep}\n")


if __name__ == "__main__":
    main()

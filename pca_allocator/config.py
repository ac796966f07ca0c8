"""
config.py — Snapshot loading for the PCA Allocation Engine

Loads the day's inputs from a config directory and builds an
AllocationContext. Also saves / loads the state a `non-floating…` call
hands to a later `floating` call.

Files (config/):
  staff_pool.csv          one row per PCA
  team_demand.csv         team, demand
  team_preferences.csv    optional
  special_programs.json   optional

List columns accept ';', ',' or '|' separators ("1;2;3", "upper,lower").
"""

import json
import logging
import math
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pca_allocator.allocation_config import (
    ALL_SLOTS,
    PHASE_ALL,
    SLOT_TIMES,
    TEAMS,
    WEEKDAYS,
)
from pca_allocator.demand import apply_program_addons, leave_fte
from pca_allocator.models import (
    Allocation,
    AllocationContext,
    AllocationResult,
    SpecialProgram,
    StaffAvailability,
    TeamPreference,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
STAFF_POOL_FILE = "staff_pool.csv"
TEAM_DEMAND_FILE = "team_demand.csv"
TEAM_PREFERENCES_FILE = "team_preferences.csv"
SPECIAL_PROGRAMS_FILE = "special_programs.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == "" or str(value).strip().lower() == "nan"


def _parse_yes_no(value: Any, default: bool = False) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1", "y")


def _parse_list(raw: Any) -> List[str]:
    if _is_blank(raw):
        return []
    s = str(raw).strip().strip('"').strip("'")
    s = s.replace(";", ",").replace("|", ",")
    return [p.strip() for p in s.split(",") if p.strip()]


def _parse_slots(raw: Any) -> List[int]:
    slots = []
    for token in _parse_list(raw):
        slot = int(float(token))
        if slot not in ALL_SLOTS:
            raise ValueError(f"Slot {slot} outside 1-4")
        slots.append(slot)
    return sorted(set(slots))


def _optional_str(raw: Any) -> Optional[str]:
    return None if _is_blank(raw) else str(raw).strip()


def _optional_slot(raw: Any) -> Optional[int]:
    return None if _is_blank(raw) else int(float(raw))


def weekday_key(d: date) -> str:
    """mon..sun key for a date."""
    return (WEEKDAYS + ("sat", "sun"))[d.weekday()]


# ---------------------------------------------------------------------------
# Staff pool
# ---------------------------------------------------------------------------

def load_staff_pool(path: Optional[Path] = None) -> List[StaffAvailability]:
    """
    Load the day's PCA pool from staff_pool.csv.

    Expected columns:
      id, name, floating, team, available_slots, base_fte, special_programs,
      is_available, invalid_slot, leave_comeback_time, leave_mode,
      leave_type, floor_pca (all but id / name optional)

    base_fte defaults to the on-duty FTE of leave_type (1.0 without leave);
    is_available defaults to base_fte > 0.
    """
    import pandas as pd

    path = path or DEFAULT_CONFIG_DIR / STAFF_POOL_FILE
    if not path.exists():
        raise FileNotFoundError(f"Staff pool file not found: {path}")

    df = pd.read_csv(path, dtype=str)

    pool: List[StaffAvailability] = []
    for _, row in df.iterrows():
        leave_type = _optional_str(row.get("leave_type"))
        base_fte = (
            leave_fte(leave_type) if _is_blank(row.get("base_fte"))
            else float(row.get("base_fte"))
        )
        is_available = _parse_yes_no(row.get("is_available"), default=base_fte > 0)
        slots = (
            list(ALL_SLOTS) if _is_blank(row.get("available_slots"))
            else _parse_slots(row.get("available_slots"))
        )

        pool.append(StaffAvailability(
            id=str(row["id"]).strip(),
            name=str(row["name"]).strip(),
            floating=_parse_yes_no(row.get("floating")),
            team=_optional_str(row.get("team")),
            available_slots=slots if is_available else [],
            base_fte=base_fte,
            special_programs=_parse_list(row.get("special_programs")),
            is_available=is_available,
            invalid_slot=_optional_slot(row.get("invalid_slot")),
            leave_comeback_time=_optional_str(row.get("leave_comeback_time")),
            leave_mode=_optional_str(row.get("leave_mode")),
            leave_type=leave_type,
            floor_pca=[f.lower() for f in _parse_list(row.get("floor_pca"))],
        ))

    logger.info(f"Loaded {len(pool)} PCAs from {path}")
    return pool


# ---------------------------------------------------------------------------
# Team demand + preferences
# ---------------------------------------------------------------------------

def load_team_demand(path: Optional[Path] = None) -> Dict[str, float]:
    import pandas as pd

    path = path or DEFAULT_CONFIG_DIR / TEAM_DEMAND_FILE
    if not path.exists():
        raise FileNotFoundError(f"Team demand file not found: {path}")

    df = pd.read_csv(path)
    demand: Dict[str, float] = {}
    for _, row in df.iterrows():
        team = str(row["team"]).strip()
        if team not in TEAMS:
            raise ValueError(f"Unknown team {team!r} in {path.name}")
        demand[team] = float(row["demand"])

    logger.info(f"Loaded demand for {len(demand)} teams ({sum(demand.values()):.2f} FTE)")
    return demand


def load_team_preferences(path: Optional[Path] = None) -> Dict[str, TeamPreference]:
    """Returns {} (with a warning) when the file is missing."""
    import pandas as pd

    path = path or DEFAULT_CONFIG_DIR / TEAM_PREFERENCES_FILE
    if not path.exists():
        logger.warning(f"Team preferences not found: {path}. Using none.")
        return {}

    df = pd.read_csv(path, dtype=str)
    preferences: Dict[str, TeamPreference] = {}
    for _, row in df.iterrows():
        team = str(row["team"]).strip()
        preferences[team] = TeamPreference(
            team=team,
            preferred_pca_ids=_parse_list(row.get("preferred_pca_ids")),
            preferred_not_pca_ids=_parse_list(row.get("preferred_not_pca_ids")),
            preferred_slots=_parse_slots(row.get("preferred_slots")),
            gym_slot=_optional_slot(row.get("gym_slot")),
            avoid_gym=_parse_yes_no(row.get("avoid_gym")),
            floor=(_optional_str(row.get("floor")) or "").lower() or None,
        )
    return preferences


# ---------------------------------------------------------------------------
# Special programs
# ---------------------------------------------------------------------------

def load_special_programs(path: Optional[Path] = None) -> List[SpecialProgram]:
    """
    Load program definitions from JSON:
      [{"id", "name", "weekdays", "slots": {"mon": [1, 2]}, "staff_ids",
        "fte_subtraction": {"FO": {"mon": 0.25}}, "team", "addon_fte"}]
    """
    path = path or DEFAULT_CONFIG_DIR / SPECIAL_PROGRAMS_FILE
    if not path.exists():
        logger.warning(f"Special programs not found: {path}. Using none.")
        return []

    with open(path) as f:
        data = json.load(f)

    programs = []
    for item in data:
        program = SpecialProgram(
            id=str(item["id"]),
            name=str(item["name"]),
            weekdays=[w.lower() for w in item.get("weekdays", [])],
            slots={k.lower(): [int(s) for s in v] for k, v in (item.get("slots") or {}).items()},
            staff_ids=[str(s) for s in item.get("staff_ids", [])],
            fte_subtraction={
                team: {k.lower(): float(v) for k, v in by_day.items()}
                for team, by_day in (item.get("fte_subtraction") or {}).items()
            },
            team=item.get("team"),
            addon_fte=item.get("addon_fte"),
        )
        program.kind  # unknown names fail here, at load time
        programs.append(program)

    logger.info(f"Loaded {len(programs)} special programs from {path}")
    return programs


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def load_snapshot(
    target_date: date,
    phase: str = PHASE_ALL,
    config_dir: Optional[Path] = None,
    apply_addons: bool = False,
) -> AllocationContext:
    """Build the full AllocationContext for `target_date` from a config directory."""
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    weekday = weekday_key(target_date)

    programs = load_special_programs(config_dir / SPECIAL_PROGRAMS_FILE)
    demand = load_team_demand(config_dir / TEAM_DEMAND_FILE)
    if apply_addons:
        demand = apply_program_addons(demand, programs, weekday)

    return AllocationContext(
        team_demand=demand,
        staff_pool=load_staff_pool(config_dir / STAFF_POOL_FILE),
        phase=phase,
        weekday=weekday,
        special_programs=programs,
        team_preferences=load_team_preferences(config_dir / TEAM_PREFERENCES_FILE),
    )


# ---------------------------------------------------------------------------
# Phase state (non-floating → floating hand-off)
# ---------------------------------------------------------------------------

def save_phase_state(result: AllocationResult, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "phase": result.phase,
        "allocations": [a.to_dict() for a in result.allocations],
        "team_assigned": {k: round(v, 4) for k, v in result.team_assigned.items()},
        "errors": result.errors,
        "saved_on": date.today().isoformat(),
    }
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Phase state saved to {path}")


def load_phase_state(path: Path) -> Tuple[List[Allocation], Dict[str, float]]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Phase state not found: {path}")
    with open(path) as f:
        data = json.load(f)
    allocations = [Allocation.from_dict(item) for item in data.get("allocations", [])]
    team_assigned = {k: float(v) for k, v in (data.get("team_assigned") or {}).items()}
    return allocations, team_assigned


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config() -> Dict[str, Any]:
    return {
        "teams":       list(TEAMS),
        "slots":       list(ALL_SLOTS),
        "slot_times":  dict(SLOT_TIMES),
        "weekdays":    list(WEEKDAYS),
        "config_dir":  str(DEFAULT_CONFIG_DIR),
    }

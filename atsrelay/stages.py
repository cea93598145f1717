"""
Interview stage selection.

Picks the stage a freshly uploaded candidate should land in. Rules are
tried in order and the first match wins; the order is part of the
contract.
"""

import math
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import StageSelection
from .normalize import normalize_text


def _title(stage: Dict[str, Any]) -> str:
    return normalize_text(stage.get("title") or "")


def _order(stage: Dict[str, Any]) -> float:
    value = stage.get("orderInInterviewPlan")
    if isinstance(value, bool):
        return math.inf
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.inf


STAGE_RULES: List[Tuple[str, Callable[[str], bool]]] = [
    ("recruiting_screen_exact", lambda t: t == "recruiting screen"),
    ("recruiter_screen_exact", lambda t: t == "recruiter screen"),
    ("recruiting_screen_contains", lambda t: "recruiting screen" in t),
    ("recruiter_screen_contains", lambda t: "recruiter screen" in t),
    ("recruit_and_screen", lambda t: "recruit" in t and "screen" in t),
    ("lead_exact", lambda t: t == "lead"),
    ("lead_contains", lambda t: "lead" in t),
]


def pick_stage(stages: Optional[List[Dict[str, Any]]]) -> StageSelection:
    """
    Pick the preferred interview stage from a job's interview plan.

    Args:
        stages: Interview stage dicts with ``title`` and
            ``orderInInterviewPlan``

    Returns:
        StageSelection naming the matched stage and the rule that matched;
        ``StageSelection(None, "none")`` for an empty plan
    """
    candidates = [s for s in (stages or []) if isinstance(s, dict)]
    if not candidates:
        return StageSelection(stage=None, strategy="none")

    titled = [(s, _title(s)) for s in candidates]
    for strategy, matches in STAGE_RULES:
        for stage, title in titled:
            if matches(title):
                return StageSelection(stage=stage, strategy=strategy)

    # min() keeps the first stage on equal order values
    earliest = min(candidates, key=_order)
    return StageSelection(stage=earliest, strategy="earliest_by_order")

"""
Stats helpers - recency decay, age computation and score distributions.
"""

import math
from datetime import date, datetime, timezone
from typing import Dict, Any, Iterable, List, Optional

import numpy as np

from core.scorer.geo import clamp


def recency_decay(age_days: float, half_life_days: float) -> float:
    """
    Exponential decay exp(-ln2 / half_life * age), clamped to [0, 1].

    Ages <= 0 score exactly 1. A half-life below one day is treated as one day.
    """
    if age_days <= 0:
        return 1.0
    half_life = max(1.0, half_life_days)
    return clamp(math.exp(-math.log(2) / half_life * age_days))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_in_days(then: Optional[datetime], now: datetime) -> Optional[float]:
    if then is None:
        return None
    return (_as_utc(now) - _as_utc(then)).total_seconds() / 86400.0


def age_in_years(birthdate: Optional[date], today: date) -> Optional[int]:
    """Whole years between birthdate and today, or None when unknown."""
    if birthdate is None:
        return None
    if isinstance(birthdate, datetime):
        birthdate = birthdate.date()
    if isinstance(today, datetime):
        today = today.date()
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return years


def _percentiles(values: List[float]) -> Dict[str, float]:
    arr = np.asarray(values, dtype=np.float64)
    return {
        'mean': float(arr.mean()),
        'p50': float(np.percentile(arr, 50)),
        'p90': float(np.percentile(arr, 90)),
    }


def summarize_distribution(scores: Iterable[float], components: Optional[Dict[str, Iterable[float]]] = None) -> Dict[str, Any]:
    """
    Summarize final scores (count, mean, p50, p90, zero count) and per-component mean/p50/p90.
    """
    values = list(scores)
    if not values:
        return {'count': 0}

    summary: Dict[str, Any] = {'count': len(values)}
    summary.update(_percentiles(values))
    summary['zeros'] = sum(1 for v in values if v == 0)

    per_component = {}
    for key, comp_values in (components or {}).items():
        comp_values = list(comp_values)
        if comp_values:
            per_component[key] = _percentiles(comp_values)
    summary['components'] = per_component
    return summary

"""
Preference classifiers.

These do not exclude candidates. They flag whether a candidate falls within
the viewer's stated preferences; missing candidate data under an active
preference counts as outside.
"""

from typing import Dict, Optional

from core.scorer.geo import distance_km
from core.scorer.models import MatchContext
from core.scorer.stats import age_in_years


def within_gender_preference(ctx: MatchContext) -> bool:
    preferred = ctx.viewer.preferred_genders
    if not preferred:
        return True
    if not ctx.candidate.gender:
        return False
    return ctx.candidate.gender in preferred


def within_age_preference(ctx: MatchContext) -> bool:
    age_min = ctx.viewer.preferred_age_min
    age_max = ctx.viewer.preferred_age_max
    if age_min is None and age_max is None:
        return True

    age = age_in_years(ctx.candidate.birthdate, ctx.now.date())
    if age is None:
        return False
    if age_min is not None and age < age_min:
        return False
    if age_max is not None and age > age_max:
        return False
    return True


def within_distance_preference(ctx: MatchContext, distance: Optional[float] = None) -> bool:
    preferred = ctx.viewer.preferred_distance_km
    if preferred is None:
        return True
    if distance is None:
        distance = distance_km(ctx.viewer.lat, ctx.viewer.lng, ctx.candidate.lat, ctx.candidate.lng)
    if distance is None:
        return False
    return distance <= preferred


def classify(ctx: MatchContext, distance: Optional[float] = None) -> Dict[str, bool]:
    return {
        'gender': within_gender_preference(ctx),
        'age': within_age_preference(ctx),
        'distance': within_distance_preference(ctx, distance),
    }


def tier_for(compliance: Dict[str, bool]) -> str:
    """Tier A when every preference is met, B otherwise."""
    return "A" if all(compliance.values()) else "B"

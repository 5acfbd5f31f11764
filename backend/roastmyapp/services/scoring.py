"""Application scoring: how well a roaster fits a roast request."""
from typing import Dict, Iterable, Optional, Tuple

from roastmyapp.config import Settings, get_settings


def specialty_match_ratio(specialties: Iterable[str], focus_areas: Iterable[str]) -> float:
    """Fraction of the request's focus areas covered by the roaster's specialties."""
    wanted = {str(area).strip().lower() for area in focus_areas or [] if str(area).strip()}
    if not wanted:
        # No focus areas: nothing to miss
        return 1.0
    have = {str(spec).strip().lower() for spec in specialties or [] if str(spec).strip()}
    return len(wanted & have) / len(wanted)


def compute_application_score(
    *,
    specialties: Iterable[str],
    focus_areas: Iterable[str],
    experience: Optional[str],
    rating: float,
    level: str,
    completion_rate: float,
    settings: Optional[Settings] = None,
) -> Tuple[int, Dict[str, float]]:
    """
    Compute an application score (0-100) for a roaster on a roast request.

    Returns:
        Tuple of (score, per-component points)
    """
    settings = settings or get_settings()
    experience_points = settings.experience_points()
    level_points = settings.level_points()

    components = {
        "specialties": specialty_match_ratio(specialties, focus_areas) * settings.scoring_weight_specialties,
        # Unknown tiers fall back to the lowest configured tier
        "experience": experience_points.get(experience or "", min(experience_points.values(), default=0.0)),
        "rating": max(0.0, min(5.0, float(rating or 0.0))) / 5.0 * settings.scoring_weight_rating,
        "level": level_points.get(level, min(level_points.values(), default=0.0)),
        "completion": max(0.0, min(100.0, float(completion_rate or 0.0))) / 100.0 * settings.scoring_weight_completion,
    }

    score = int(round(sum(components.values())))
    return max(0, min(100, score)), {key: round(value, 2) for key, value in components.items()}

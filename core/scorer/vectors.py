from typing import Optional, Sequence
import math

import numpy as np

from core.scorer.geo import clamp

FLAT_EPSILON = 1e-6


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two equal-length vectors in [-1, 1]; 0 when either has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


def to_unit_interval(cosine: float) -> float:
    """Map a cosine in [-1, 1] to [0, 1]."""
    return clamp((cosine + 1.0) / 2.0)


def to_centered_vector(vector: Optional[Sequence[float]]) -> Optional[np.ndarray]:
    """Subtract the mean. A flat vector carries no direction and yields None."""
    if vector is None or len(vector) == 0:
        return None
    arr = np.asarray(vector, dtype=np.float64)
    centered = arr - arr.mean()
    if np.all(np.abs(centered) < FLAT_EPSILON):
        return None
    return centered


def normalize_rating(value: Optional[float], rating_max: float) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return clamp(value / rating_max)

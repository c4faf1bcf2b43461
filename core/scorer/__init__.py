#!/usr/bin/env python3
"""
Scoring Module - multi-operator match scoring.

Public API:
- MatchAggregator: weighted evaluation and pruned top-K ranking
- SCORING_OPERATORS: the registered operator set
- FeatureBundle, Preferences, MatchContext, ViewerContext, ScoreResult

Modules:

- geo.py, stats.py, vectors.py: numeric helpers
- interests.py, traits.py, quiz.py, ratings.py: per-dimension scoring functions
- models.py: data structures
- operators.py: operator wrappers around the scoring functions
- classifiers.py: preference compliance flags and tiers
- heap.py: bounded top-K structure
- aggregator.py: MatchAggregator orchestrator
"""

from core.scorer.aggregator import MatchAggregator, CandidateRanker
from core.scorer.models import (
    FeatureBundle,
    MatchContext,
    OperatorResult,
    Preferences,
    QuizAnswers,
    RatingSummary,
    ScoreResult,
    TraitValue,
    ViewerContext,
)
from core.scorer.operators import SCORING_OPERATORS, OPERATORS_BY_KEY, ScoringOperator

__all__ = [
    'MatchAggregator',
    'CandidateRanker',
    'FeatureBundle',
    'MatchContext',
    'OperatorResult',
    'Preferences',
    'QuizAnswers',
    'RatingSummary',
    'ScoreResult',
    'TraitValue',
    'ViewerContext',
    'SCORING_OPERATORS',
    'OPERATORS_BY_KEY',
    'ScoringOperator',
]

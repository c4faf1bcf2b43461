#!/usr/bin/env python3
"""
Match Aggregator - weighted combination of operator scores and top-K ranking.

final = sum(w_i * s_i) / sum(w_i) over every registered operator, where w_i
is prefs.weights[operator.weight_key] (0 when unset). With zero total
weight the final score is 0.

Ranking prunes candidates whose upper bound, built the same way from each
operator's cheap() bound (or score() where no bound exists), is strictly
below the score of the worst entry in a full top-K heap. Because each bound
is never below its score, pruning never changes the top-K.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from core.scorer.classifiers import classify, tier_for
from core.scorer.geo import clamp
from core.scorer.heap import TopKHeap
from core.scorer.models import FeatureBundle, MatchContext, ScoreResult, ViewerContext
from core.scorer.operators import SCORING_OPERATORS, ScoringOperator

logger = logging.getLogger(__name__)

RankedMatch = Tuple[FeatureBundle, ScoreResult]


class MatchAggregator:
    def __init__(self, operators: Sequence[ScoringOperator] = SCORING_OPERATORS):
        self.operators = tuple(operators)

    def _weighted(self, ctx: MatchContext, values: Sequence[float]) -> float:
        total_weight = 0.0
        weighted_sum = 0.0
        for op, value in zip(self.operators, values):
            weight = ctx.prefs.weight(op.weight_key)
            weighted_sum += weight * value
            total_weight += weight
        if total_weight <= 0:
            return 0.0
        return clamp(weighted_sum / total_weight)

    def evaluate(self, ctx: MatchContext) -> ScoreResult:
        """Fully score one pair."""
        results = [op.score(ctx) for op in self.operators]
        final_score = self._weighted(ctx, [r.score for r in results])

        components = {}
        meta = {}
        for op, result in zip(self.operators, results):
            components[op.component_key] = result.score
            meta[op.component_key] = dict(result.meta, absent=result.is_absent)

        distance = None
        for result in results:
            if result.meta.get('distance_km') is not None:
                distance = result.meta['distance_km']
                break

        compliance = classify(ctx, distance)
        return ScoreResult(
            candidate_id=ctx.candidate.user_id,
            final_score=final_score,
            components=components,
            meta=meta,
            compliance=compliance,
            tier=tier_for(compliance),
            distance_km=distance,
        )

    def upper_bound(self, ctx: MatchContext) -> float:
        """Upper bound on evaluate(ctx).final_score."""
        bounds = []
        for op in self.operators:
            bound = op.cheap(ctx)
            if bound is None:
                bound = op.score(ctx).score
            bounds.append(bound)
        return self._weighted(ctx, bounds)

    def ranker(self, viewer_ctx: ViewerContext, top_k: int) -> "CandidateRanker":
        return CandidateRanker(self, viewer_ctx, top_k)

    def rank(self, viewer_ctx: ViewerContext, candidates: Iterable[FeatureBundle], top_k: int) -> List[RankedMatch]:
        """
        Return the top_k (candidate, result) pairs ordered by final score
        descending, ties broken by ascending candidate id.
        """
        ranker = self.ranker(viewer_ctx, top_k)
        ranker.offer_all(candidates)
        return ranker.results()


class CandidateRanker:
    """
    Incremental ranking for one viewer.

    The heap persists across offer_all() calls so the pruning threshold
    carries over from one candidate page to the next.
    """

    def __init__(self, aggregator: MatchAggregator, viewer_ctx: ViewerContext, top_k: int):
        self.aggregator = aggregator
        self.viewer_ctx = viewer_ctx
        self.heap: TopKHeap[RankedMatch] = TopKHeap(top_k)
        self.evaluated = 0
        self.pruned = 0

    def offer(self, candidate: FeatureBundle) -> bool:
        if self.heap.capacity == 0:
            return False

        ctx = self.viewer_ctx.with_candidate(candidate)
        threshold: Optional[float] = self.heap.threshold
        if threshold is not None and self.aggregator.upper_bound(ctx) < threshold:
            self.pruned += 1
            return False

        result = self.aggregator.evaluate(ctx)
        self.evaluated += 1
        return self.heap.push(result.final_score, candidate.user_id, (candidate, result))

    def offer_all(self, candidates: Iterable[FeatureBundle]) -> int:
        kept = 0
        for candidate in candidates:
            if self.offer(candidate):
                kept += 1
        return kept

    def results(self) -> List[RankedMatch]:
        return self.heap.sorted_items()

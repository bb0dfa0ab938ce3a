"""
Scorer Module - Four-component oracle scoring and ranking.
=========================================================

Candidates are sharded into fixed-size chunks; each chunk's response is
parsed into clamped ScoreRecords whose totals are recomputed locally.
Per-shard maps are disjoint by construction and are simply unioned.
"""

from typing import Optional, Sequence

from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import Oracle
from coursescout.search.parsing import parse_score_response
from coursescout.search.prompts import build_score_prompt
from coursescout.search.sharding import Shard, make_shards
from coursescout.shared.config import PipelineConfig, StageSampling
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import AttributeSet, CourseRecord, ScoreRecord

logger = get_logger(__name__)


def rank_by_score(
    courses: Sequence[CourseRecord],
    scores: dict[str, ScoreRecord],
) -> list[CourseRecord]:
    """
    Stable sort by total, highest first.

    Unscored courses keep their relative order after every scored course.
    """
    scored = [c for c in courses if c.id in scores]
    unscored = [c for c in courses if c.id not in scores]
    scored.sort(key=lambda c: scores[c.id].total, reverse=True)
    return scored + unscored


class Scorer:
    """Concurrent scoring of the final candidate set."""

    def __init__(
        self,
        oracle: Oracle,
        runner: Optional[ShardRunner] = None,
        sampling: Optional[StageSampling] = None,
        pipeline: Optional[PipelineConfig] = None,
    ):
        self.oracle = oracle
        self.runner = runner or ShardRunner()
        self.sampling = sampling or StageSampling(temperature=0.1, reasoning_budget=0)
        self.pipeline = pipeline or PipelineConfig()

    async def _score(self, query: str, attributes: AttributeSet, shard: Shard) -> dict[str, ScoreRecord]:
        response = await self.oracle.invoke(
            build_score_prompt(query, attributes, shard.courses),
            self.sampling.temperature,
            self.sampling.reasoning_budget,
        )
        local = parse_score_response(response, len(shard))
        return {shard.courses[i - 1].id: score for i, score in local.items()}

    async def score(
        self,
        query: str,
        attributes: AttributeSet,
        candidates: Sequence[CourseRecord],
    ) -> dict[str, ScoreRecord]:
        """
        Score candidates.

        Args:
            query: Preprocessed query text
            attributes: Extracted attribute set
            candidates: Courses to score

        Returns:
            Course id -> ScoreRecord for every course the oracle scored
        """
        if not candidates:
            return {}

        shards = make_shards(candidates, self.pipeline.score_chunk_size)
        logger.info(f"Scoring: {len(candidates)} candidates in {len(shards)} chunks")

        outcomes = await self.runner.run(
            [lambda s=s: self._score(query, attributes, s) for s in shards]
        )

        scores: dict[str, ScoreRecord] = {}
        for shard, outcome in zip(shards, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Scoring chunk {shard.index + 1}/{len(shards)} failed: {outcome}")
                continue
            if not outcome:
                logger.warning(f"Scoring chunk {shard.index + 1}/{len(shards)} returned no scores")
            scores.update(outcome)

        logger.info(f"Scored {len(scores)}/{len(candidates)} courses")
        return scores

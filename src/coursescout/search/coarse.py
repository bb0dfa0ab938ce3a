"""
Coarse Filter Module - Wide, loose first pass over the full catalog.
====================================================================

The catalog is split into roughly ``coarse_target_shards`` shards and every
shard is screened concurrently against the required attributes only. A
shard that fails contributes nothing; only when no shard yields a usable
answer does the stage fail as a whole.
"""

from typing import Optional, Sequence

from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import Oracle
from coursescout.search.parsing import parse_index_response
from coursescout.search.prompts import build_coarse_prompt
from coursescout.search.sharding import Shard, coarse_shard_size, make_shards, merge_unique
from coursescout.shared.config import PipelineConfig, StageSampling
from coursescout.shared.errors import AllShardsFailedError
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import AttributeSet, CourseRecord

logger = get_logger(__name__)


class CoarseFilter:
    """
    Concurrent coarse screening of the catalog.

    Example:
        >>> coarse = CoarseFilter(oracle, ShardRunner())
        >>> candidates = await coarse.filter(query, attributes, catalog)
    """

    stage_name = "coarse_filtering"

    def __init__(
        self,
        oracle: Oracle,
        runner: Optional[ShardRunner] = None,
        sampling: Optional[StageSampling] = None,
        pipeline: Optional[PipelineConfig] = None,
    ):
        self.oracle = oracle
        self.runner = runner or ShardRunner()
        self.sampling = sampling or StageSampling(temperature=0.3, reasoning_budget=0)
        self.pipeline = pipeline or PipelineConfig()

    def shard(self, courses: Sequence[CourseRecord]) -> list[Shard]:
        size = coarse_shard_size(
            len(courses), self.pipeline.coarse_target_shards, self.pipeline.coarse_min_shard_size
        )
        return make_shards(courses, size)

    async def _screen(self, query: str, attributes: AttributeSet, shard: Shard) -> list[CourseRecord]:
        response = await self.oracle.invoke(
            build_coarse_prompt(query, attributes, shard.courses),
            self.sampling.temperature,
            self.sampling.reasoning_budget,
        )
        return shard.select(parse_index_response(response, len(shard)))

    async def filter(
        self,
        query: str,
        attributes: AttributeSet,
        courses: Sequence[CourseRecord],
    ) -> list[CourseRecord]:
        """
        Screen the catalog.

        Args:
            query: Preprocessed query text
            attributes: Extracted attribute set
            courses: Full catalog

        Returns:
            Surviving courses, unique by id, in shard order

        Raises:
            AllShardsFailedError: If no shard produced a parseable answer
        """
        if not courses:
            return []

        shards = self.shard(courses)
        logger.info(f"Coarse filter: {len(courses)} courses in {len(shards)} shards")

        outcomes = await self.runner.run(
            [lambda s=s: self._screen(query, attributes, s) for s in shards]
        )

        results: list[list[CourseRecord]] = []
        errors: list[BaseException] = []
        for shard, outcome in zip(shards, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Coarse shard {shard.index + 1}/{len(shards)} failed: {outcome}")
                errors.append(outcome)
                continue
            results.append(outcome)

        if not results:
            raise AllShardsFailedError(self.stage_name, len(shards), errors)

        merged = merge_unique(results)
        logger.info(
            f"Coarse filter kept {len(merged)}/{len(courses)} courses "
            f"({len(errors)} shard(s) failed)"
        )
        return merged

"""
Orchestrator Module - Staged search with cancellation and fail-over.
====================================================================

Runs the search pipeline:
1. Preprocess directive tokens into Instructions
2. Extract the attribute set (decompose + clean)
3. Coarse-filter the catalog
4. Precise-match the survivors (precise mode only)
5. Score and rank
6. Apply post-filters

The session's cancel flag is checked before every stage; a cancelled
search returns an empty result. Any stage-level failure, or the overall
timeout, degrades to the deterministic legacy keyword search. A misconfigured
backend is raised to the caller. Background enrichment is paused for the
duration of a search and resumed afterwards whatever the outcome.
"""

import asyncio
from typing import Callable, Optional, Protocol, Sequence

from coursescout.enrichment.cache import AnnotationCache
from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import Oracle, get_oracle_client
from coursescout.search.coarse import CoarseFilter
from coursescout.search.extractor import AttributeExtractor
from coursescout.search.legacy import keyword_search
from coursescout.search.postfilter import PostFilterEngine
from coursescout.search.precise import PreciseMatcher
from coursescout.search.preprocessor import PreprocessedQuery, QueryPreprocessor
from coursescout.search.scorer import Scorer, rank_by_score
from coursescout.shared.config import Settings, get_settings
from coursescout.shared.errors import BackendConfigError, CancellationRequested, CourseSearchError
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import (
    CourseRecord,
    SearchMode,
    SearchResult,
    SearchSession,
    SearchStage,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[SearchStage, int], None]


class Pausable(Protocol):
    """A background task that yields the backend during a search."""

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...


STAGE_PROGRESS: dict[SearchMode, dict[SearchStage, int]] = {
    SearchMode.LOOSE: {
        SearchStage.PREPROCESSING: 0,
        SearchStage.EXTRACTING: 10,
        SearchStage.COARSE_FILTERING: 33,
        SearchStage.SCORING: 66,
        SearchStage.POST_FILTERING: 90,
    },
    SearchMode.PRECISE: {
        SearchStage.PREPROCESSING: 0,
        SearchStage.EXTRACTING: 10,
        SearchStage.COARSE_FILTERING: 25,
        SearchStage.PRECISE_MATCHING: 50,
        SearchStage.SCORING: 75,
        SearchStage.POST_FILTERING: 90,
    },
}


class Orchestrator:
    """
    Sequences the search stages over one catalog.

    Example:
        >>> orchestrator = Orchestrator(catalog, timetable_codes=["M56"])
        >>> result = await orchestrator.search("{free} databases {exclude}Wang")
        >>> result.course_ids[:3]
    """

    def __init__(
        self,
        catalog: Sequence[CourseRecord],
        oracle: Optional[Oracle] = None,
        settings: Optional[Settings] = None,
        timetable_codes: Optional[Sequence[str]] = None,
        annotations: Optional[AnnotationCache] = None,
        enricher: Optional[Pausable] = None,
        runner: Optional[ShardRunner] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            catalog: Course catalog (read-only)
            oracle: Oracle to use (defaults to the configured client)
            settings: Settings instance (defaults to the singleton)
            timetable_codes: Time codes of the personal timetable
            annotations: Keyword cache read into course records at search start
            enricher: Background task paused while a search runs
            runner: Fan-out strategy (defaults to settings.pipeline batching)
            progress_callback: Optional callback(stage, percent)
        """
        self.catalog = list(catalog)
        self.settings = settings or get_settings()
        self._oracle = oracle
        self.timetable_codes = list(timetable_codes or [])
        self.annotations = annotations
        self.enricher = enricher
        self.runner = runner or ShardRunner.from_settings(self.settings)
        self.progress_callback = progress_callback

    @property
    def oracle(self) -> Oracle:
        """Lazy-load the configured oracle client."""
        if self._oracle is None:
            self._oracle = get_oracle_client(settings=self.settings)
        return self._oracle

    def new_session(self, mode: Optional[str] = None) -> SearchSession:
        """Create a session in the given or configured mode."""
        return SearchSession(mode=SearchMode(mode or self.settings.get_effective_mode()))

    # ─────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        mode: Optional[str] = None,
        session: Optional[SearchSession] = None,
    ) -> SearchResult:
        """
        Run one search.

        Args:
            query: Raw user query, possibly with directive tokens
            mode: "loose" or "precise" (ignored when a session is given)
            session: Session to run in; keep a reference to cancel it

        Returns:
            SearchResult. Its stage is DONE, CANCELLED or FAILED_OVER_TO_LEGACY.

        Raises:
            BackendConfigError: If the oracle provider is unknown or lacks a key or URL
        """
        session = session or self.new_session(mode)
        logger.info(f"Search started ({session.mode.value} mode): {query}")

        if self.enricher is not None:
            self.enricher.pause()

        preprocessed: Optional[PreprocessedQuery] = None
        try:
            self._enter(session, SearchStage.PREPROCESSING)
            preprocessed = QueryPreprocessor(self.timetable_codes).process(query)

            return await asyncio.wait_for(
                self._run_stages(session, preprocessed),
                timeout=self.settings.pipeline.overall_timeout_seconds,
            )

        except CancellationRequested:
            logger.info(f"Search cancelled after {session.stage.value}")
            return self._finish(session, SearchStage.CANCELLED, SearchResult(), preprocessed)

        except BackendConfigError:
            raise

        except asyncio.TimeoutError:
            logger.error(
                f"Search exceeded {self.settings.pipeline.overall_timeout_seconds}s; "
                "falling back to keyword search"
            )
            return self._legacy(session, query, preprocessed, "timeout")

        except CourseSearchError as e:
            logger.error(f"Stage '{session.stage.value}' failed ({e}); falling back to keyword search")
            return self._legacy(session, query, preprocessed, str(e))

        finally:
            if self.enricher is not None:
                self.enricher.resume()

    def legacy_search(self, query: str) -> list[CourseRecord]:
        """Keyword search with directive tokens removed from the query."""
        preprocessed = QueryPreprocessor(self.timetable_codes).process(query)
        return keyword_search(self._catalog(), preprocessed.legacy_text)

    # ─────────────────────────────────────────────────────────────────────
    # Stages
    # ─────────────────────────────────────────────────────────────────────

    async def _run_stages(self, session: SearchSession, pre: PreprocessedQuery) -> SearchResult:
        settings = self.settings
        catalog = self._catalog()

        self._enter(session, SearchStage.EXTRACTING)
        extractor = AttributeExtractor(self.oracle, settings.sampling, settings.vocabulary)
        attributes = await extractor.extract(pre.text, pre.instructions)

        self._enter(session, SearchStage.COARSE_FILTERING)
        coarse = CoarseFilter(self.oracle, self.runner, settings.sampling.coarse, settings.pipeline)
        candidates = await coarse.filter(pre.text, attributes, catalog)

        precise_fallback = False
        if session.mode == SearchMode.PRECISE and candidates:
            self._enter(session, SearchStage.PRECISE_MATCHING)
            matcher = PreciseMatcher(self.oracle, self.runner, settings.sampling.precise, settings.pipeline)
            outcome = await matcher.match(pre.text, attributes, candidates)
            candidates, precise_fallback = outcome.courses, outcome.fallback_used

        self._enter(session, SearchStage.SCORING)
        scorer = Scorer(self.oracle, self.runner, settings.sampling.scoring, settings.pipeline)
        scores = await scorer.score(pre.text, attributes, candidates)
        ranked = rank_by_score(candidates, scores)

        self._enter(session, SearchStage.POST_FILTERING)
        final = PostFilterEngine(settings.vocabulary).apply(ranked, pre.instructions)

        if not final and settings.pipeline.legacy_on_empty:
            logger.warning("Search found no courses; falling back to keyword search")
            return self._legacy(session, pre.original, pre, "no results")

        result = SearchResult(
            course_ids=[c.id for c in final],
            scores={c.id: scores[c.id] for c in final if c.id in scores},
            precise_fallback=precise_fallback,
        )
        return self._finish(session, SearchStage.DONE, result, pre)

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    def _catalog(self) -> list[CourseRecord]:
        if self.annotations is None:
            return self.catalog
        return self.annotations.annotate(self.catalog)

    def _enter(self, session: SearchSession, stage: SearchStage) -> None:
        session.raise_if_cancelled()
        session.stage = stage
        logger.debug(f"Stage: {stage.value} ({session.elapsed_seconds:.1f}s)")
        self._report(stage, STAGE_PROGRESS[session.mode].get(stage, 0))

    def _report(self, stage: SearchStage, percent: int) -> None:
        if self.progress_callback is not None:
            self.progress_callback(stage, percent)

    def _legacy(
        self,
        session: SearchSession,
        query: str,
        pre: Optional[PreprocessedQuery],
        reason: str,
    ) -> SearchResult:
        text = pre.legacy_text if pre is not None else query
        courses = keyword_search(self._catalog(), text)
        result = SearchResult(course_ids=[c.id for c in courses], error=reason)
        return self._finish(session, SearchStage.FAILED_OVER_TO_LEGACY, result, pre)

    def _finish(
        self,
        session: SearchSession,
        stage: SearchStage,
        result: SearchResult,
        pre: Optional[PreprocessedQuery],
    ) -> SearchResult:
        session.stage = stage
        session.finish()
        result.stage = stage
        result.mode = session.mode
        result.elapsed_seconds = session.elapsed_seconds
        result.instructions = pre.instructions if pre is not None else None
        self._report(stage, 100)
        logger.info(
            f"Search finished: {stage.value}, {len(result.course_ids)} course(s) "
            f"in {result.elapsed_seconds:.2f}s"
        )
        return result

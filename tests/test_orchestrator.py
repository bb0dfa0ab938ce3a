"""
Tests for the Search Orchestrator.
==================================

End-to-end scenarios over a three-course catalog with a stub oracle:
- Happy path in loose and precise mode
- Coarse total failure falling over to keyword search
- Misconfigured backends raised, malformed endpoints falling over
- Cancellation between stages
- Overall timeout, empty results, enrichment pause/resume, progress
"""

import asyncio

import pytest

from coursescout.search.prompts import (
    CLEAN_HEADER,
    COARSE_HEADER,
    DECOMPOSE_HEADER,
    PRECISE_HEADER,
    SCORING_HEADER,
)


class RecordingEnricher:
    """Pausable stand-in recording calls."""

    def __init__(self):
        self.calls: list[str] = []

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")


def _orchestrator(catalog, oracle, settings, **kwargs):
    from coursescout.search.orchestrator import Orchestrator

    return Orchestrator(catalog, oracle=oracle, settings=settings, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Happy Path
# ─────────────────────────────────────────────────────────────────────────────


class TestSearchScenarios:
    """End-to-end pipeline scenarios."""

    def test_scenario_constant_oracle(self, sample_catalog, constant_oracle, test_settings):
        """Test an oracle answering "2" everywhere yields exactly course 2."""
        from coursescout.shared.schemas import SearchStage

        orchestrator = _orchestrator(sample_catalog, constant_oracle, test_settings)
        result = asyncio.run(orchestrator.search("Monday afternoon, department X", mode="loose"))

        assert result.course_ids == ["2"]
        assert result.stage == SearchStage.DONE
        assert not result.used_legacy
        assert result.scores == {}
        assert len(constant_oracle.prompts_for(COARSE_HEADER)) == 1
        assert constant_oracle.prompts_for(PRECISE_HEADER) == []

    def test_precise_mode_with_scores(self, sample_catalog, make_oracle, test_settings):
        """Test precise mode runs the strict pass and ranks by recomputed totals."""
        from coursescout.shared.schemas import SearchMode

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Database", "Programming"]]]}'
            if prompt.startswith(CLEAN_HEADER):
                return "unchanged"
            if prompt.startswith(COARSE_HEADER):
                return "1, 2"
            if prompt.startswith(PRECISE_HEADER):
                return "1,2"
            if prompt.startswith(SCORING_HEADER):
                return "1:100:10:10:10:10\n2:0:30:30:20:20"
            return "none"

        oracle = make_oracle(responder)
        orchestrator = _orchestrator(sample_catalog, oracle, test_settings)
        result = asyncio.run(orchestrator.search("Database or Programming", mode="precise"))

        assert result.mode == SearchMode.PRECISE
        assert result.course_ids == ["2", "1"]
        assert result.scores["2"].total == 100
        assert result.scores["1"].total == 40
        assert not result.precise_fallback
        assert len(oracle.prompts_for(PRECISE_HEADER)) == 1

    def test_precise_fallback_flag(self, sample_catalog, make_oracle, test_settings):
        """Test an empty precise pass keeps the coarse candidates."""

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Database", "Programming"]]]}'
            if prompt.startswith(COARSE_HEADER):
                return "1,2"
            return "none"

        orchestrator = _orchestrator(sample_catalog, make_oracle(responder), test_settings)
        result = asyncio.run(orchestrator.search("Database or Programming", mode="precise"))

        assert result.course_ids == ["1", "2"]
        assert result.precise_fallback

    def test_post_filters_applied(self, sample_catalog, make_oracle, test_settings):
        """Test directives filter the ranked list after scoring."""

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"credits": ["optional", [["3"]]]}'
            if prompt.startswith(COARSE_HEADER):
                return "1,2,3"
            return "none"

        orchestrator = _orchestrator(sample_catalog, make_oracle(responder), test_settings)
        result = asyncio.run(orchestrator.search("anything {exclude}Wang {high-credit}"))

        assert result.course_ids == ["1"]
        assert result.instructions.exclude_keywords == ("Wang",)

    def test_annotations_reach_prompts(self, sample_catalog, make_oracle, test_settings):
        """Test cached keywords are attached before scoring."""
        from coursescout.enrichment.cache import AnnotationCache

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Database"]]]}'
            if prompt.startswith(COARSE_HEADER):
                return "2"
            return "none"

        oracle = make_oracle(responder)
        cache = AnnotationCache(entries={"2": "normal forms, SQL"})
        orchestrator = _orchestrator(sample_catalog, oracle, test_settings, annotations=cache)
        asyncio.run(orchestrator.search("Database"))

        assert "keywords: normal forms, SQL" in oracle.prompts_for(SCORING_HEADER)[0]


# ─────────────────────────────────────────────────────────────────────────────
# Fail-over
# ─────────────────────────────────────────────────────────────────────────────


class TestFailOver:
    """Tests for degradation to keyword search."""

    def test_all_coarse_shards_unparseable(self, sample_catalog, make_oracle, test_settings):
        """Test a failed coarse stage returns the keyword search output unchanged."""
        from coursescout.search.legacy import keyword_search
        from coursescout.shared.schemas import SearchStage

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["database"]]], "teacher": ["optional", [["Wang"]]]}'
            if prompt.startswith(COARSE_HEADER):
                return "garbled output"
            return "unchanged"

        oracle = make_oracle(responder)
        orchestrator = _orchestrator(sample_catalog, oracle, test_settings)
        result = asyncio.run(orchestrator.search("Database Wang"))

        expected = [c.id for c in keyword_search(sample_catalog, "Database Wang")]
        assert result.stage == SearchStage.FAILED_OVER_TO_LEGACY
        assert result.used_legacy
        assert result.course_ids == expected == ["2"]
        assert result.scores == {}
        assert "coarse_filtering" in result.error
        assert oracle.prompts_for(SCORING_HEADER) == []

    def test_backend_down(self, sample_catalog, make_oracle, test_settings):
        """Test an unreachable backend during extraction falls over."""
        from coursescout.shared.errors import TransientBackendError

        oracle = make_oracle(lambda p: TransientBackendError("unavailable"))
        result = asyncio.run(_orchestrator(sample_catalog, oracle, test_settings).search("art"))

        assert result.used_legacy
        assert result.course_ids == ["3"]

    def test_empty_result_uses_legacy(self, sample_catalog, make_oracle, test_settings):
        """Test an empty final list falls back to keyword search when configured."""

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Art"]]]}'
            return "none"

        result = asyncio.run(
            _orchestrator(sample_catalog, make_oracle(responder), test_settings).search("Art")
        )

        assert result.used_legacy
        assert result.error == "no results"
        assert result.course_ids == ["3"]

    def test_empty_result_kept_when_disabled(self, sample_catalog, make_oracle, test_settings):
        """Test an empty final list is returned as is when fallback is off."""
        from coursescout.shared.schemas import SearchStage

        test_settings.pipeline.legacy_on_empty = False

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Art"]]]}'
            return "none"

        result = asyncio.run(
            _orchestrator(sample_catalog, make_oracle(responder), test_settings).search("Art")
        )

        assert result.stage == SearchStage.DONE
        assert result.course_ids == []

    def test_overall_timeout(self, sample_catalog, test_settings):
        """Test exceeding the overall timeout falls over to keyword search."""

        class HangingOracle:
            async def invoke(self, prompt, temperature, reasoning_budget=0):
                await asyncio.sleep(10)
                return "1"

        test_settings.pipeline.overall_timeout_seconds = 0.05
        result = asyncio.run(
            _orchestrator(sample_catalog, HangingOracle(), test_settings).search("Database")
        )

        assert result.used_legacy
        assert result.error == "timeout"
        assert result.course_ids == ["2"]

    def test_unknown_provider_surfaces(self, sample_catalog, test_settings):
        """Test a misconfigured provider is raised, not masked."""
        from coursescout.search.orchestrator import Orchestrator
        from coursescout.shared.errors import UnknownProviderError

        test_settings.oracle.provider = "carrier-pigeon"
        orchestrator = Orchestrator(sample_catalog, settings=test_settings)

        with pytest.raises(UnknownProviderError):
            asyncio.run(orchestrator.search("Database"))

    def test_missing_api_key_surfaces(self, sample_catalog, test_settings):
        """Test a hosted provider without a key is raised as a configuration error."""
        from coursescout.search.orchestrator import Orchestrator
        from coursescout.shared.errors import BackendConfigError

        test_settings.oracle.provider = "gemini"
        test_settings.gemini_api_key = ""
        enricher = RecordingEnricher()
        orchestrator = Orchestrator(sample_catalog, settings=test_settings, enricher=enricher)

        with pytest.raises(BackendConfigError) as exc_info:
            asyncio.run(orchestrator.search("Database"))

        assert "GEMINI_API_KEY" in str(exc_info.value)
        assert enricher.calls == ["pause", "resume"]

    def test_malformed_endpoint_falls_over(self, sample_catalog, test_settings, sleep_recorder):
        """Test an httpx error from a bad endpoint degrades to keyword search."""
        import httpx

        from coursescout.oracle.backends import OllamaBackend
        from coursescout.oracle.client import OracleClient

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("bad url")

        client = OracleClient(
            OllamaBackend("http://oracle.test", "m"),
            transport=httpx.MockTransport(handler),
            sleep=sleep_recorder,
        )
        result = asyncio.run(_orchestrator(sample_catalog, client, test_settings).search("Database"))

        assert result.used_legacy
        assert result.course_ids == ["2"]
        assert "bad url" in result.error
        assert sleep_recorder.delays == []


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation & Collaborators
# ─────────────────────────────────────────────────────────────────────────────


class TestSessionControl:
    """Tests for cancellation, enrichment pausing and progress."""

    def test_cancel_after_coarse(self, sample_catalog, make_oracle, test_settings):
        """Test cancelling during coarse filtering stops before scoring."""
        from coursescout.shared.schemas import SearchMode, SearchSession, SearchStage

        session = SearchSession(mode=SearchMode.LOOSE)

        def responder(prompt):
            if prompt.startswith(COARSE_HEADER):
                session.cancel()
                return "2"
            if prompt.startswith(DECOMPOSE_HEADER):
                return '{"name": ["required", [["Database"]]]}'
            return "unchanged"

        oracle = make_oracle(responder)
        orchestrator = _orchestrator(sample_catalog, oracle, test_settings)
        result = asyncio.run(orchestrator.search("Database", session=session))

        assert result.stage == SearchStage.CANCELLED
        assert result.cancelled
        assert result.course_ids == []
        assert result.scores == {}
        assert oracle.prompts_for(SCORING_HEADER) == []
        assert len(oracle.prompts_for(COARSE_HEADER)) == 1

    def test_cancel_before_start(self, sample_catalog, constant_oracle, test_settings):
        """Test a session cancelled up front makes no oracle calls."""
        orchestrator = _orchestrator(sample_catalog, constant_oracle, test_settings)
        session = orchestrator.new_session()
        session.cancel()

        result = asyncio.run(orchestrator.search("Database", session=session))

        assert result.cancelled
        assert constant_oracle.prompts == []

    def test_enricher_paused_during_search(self, sample_catalog, constant_oracle, test_settings):
        """Test the enricher is paused then resumed around a search."""
        enricher = RecordingEnricher()
        orchestrator = _orchestrator(sample_catalog, constant_oracle, test_settings, enricher=enricher)

        asyncio.run(orchestrator.search("Monday afternoon, department X"))

        assert enricher.calls == ["pause", "resume"]

    def test_enricher_resumed_after_failure(self, sample_catalog, make_oracle, test_settings):
        """Test the enricher is resumed even when the search falls over."""
        from coursescout.shared.errors import FatalBackendError

        enricher = RecordingEnricher()
        oracle = make_oracle(lambda p: FatalBackendError("nope"))
        orchestrator = _orchestrator(sample_catalog, oracle, test_settings, enricher=enricher)

        result = asyncio.run(orchestrator.search("Database"))

        assert result.used_legacy
        assert enricher.calls == ["pause", "resume"]

    def test_progress_reported(self, sample_catalog, constant_oracle, test_settings):
        """Test each stage reports progress, ending at 100."""
        from coursescout.shared.schemas import SearchStage

        events = []
        orchestrator = _orchestrator(
            sample_catalog,
            constant_oracle,
            test_settings,
            progress_callback=lambda stage, percent: events.append((stage, percent)),
        )

        asyncio.run(orchestrator.search("Monday afternoon, department X", mode="loose"))

        assert events == [
            (SearchStage.PREPROCESSING, 0),
            (SearchStage.EXTRACTING, 10),
            (SearchStage.COARSE_FILTERING, 33),
            (SearchStage.SCORING, 66),
            (SearchStage.POST_FILTERING, 90),
            (SearchStage.DONE, 100),
        ]

    def test_legacy_search_strips_directives(self, sample_catalog, constant_oracle, test_settings):
        """Test direct keyword search ignores directive tokens."""
        orchestrator = _orchestrator(sample_catalog, constant_oracle, test_settings)

        courses = orchestrator.legacy_search("{evening} Database {exclude} Art")

        assert [c.id for c in courses] == ["2"]
        assert constant_oracle.prompts == []

    def test_result_to_dict(self, sample_catalog, constant_oracle, test_settings):
        """Test result serialization."""
        orchestrator = _orchestrator(sample_catalog, constant_oracle, test_settings)
        result = asyncio.run(orchestrator.search("Monday afternoon, department X", mode="loose"))

        data = result.to_dict()

        assert data["course_ids"] == ["2"]
        assert data["stage"] == "done"
        assert data["mode"] == "loose"

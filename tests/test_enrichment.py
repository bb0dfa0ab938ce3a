"""
Tests for Enrichment Module.
============================

Tests for:
- AnnotationCache: Append-only entries, persistence, annotation of records
- parse_keywords: Normalization of keyword responses
- KeywordEnricher: Batching, failure isolation, pause/resume, stop
"""

import asyncio
import json

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Cache Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAnnotationCache:
    """Tests for the annotation cache."""

    def test_append_only(self):
        """Test an existing entry is never overwritten."""
        from coursescout.enrichment.cache import AnnotationCache

        cache = AnnotationCache()

        assert cache.add("1", "sql, joins")
        assert not cache.add("1", "something else")
        assert not cache.add("2", "   ")
        assert cache.get("1") == "sql, joins"
        assert len(cache) == 1

    def test_persistence(self, temp_dir):
        """Test save and load round-trip through JSON."""
        from coursescout.enrichment.cache import AnnotationCache

        path = temp_dir / "nested" / "annotations.json"
        cache = AnnotationCache(path)
        cache.add("1", "sql")
        cache.save()

        assert json.loads(path.read_text(encoding="utf-8")) == {"1": "sql"}
        assert AnnotationCache.load(path).as_dict() == {"1": "sql"}

    def test_load_missing_file(self, temp_dir):
        """Test a missing file gives an empty cache bound to that path."""
        from coursescout.enrichment.cache import AnnotationCache

        cache = AnnotationCache.load(temp_dir / "absent.json")

        assert len(cache) == 0
        assert cache.path == temp_dir / "absent.json"

    def test_load_rejects_non_object(self, temp_dir):
        """Test a list file is rejected."""
        from coursescout.enrichment.cache import AnnotationCache

        path = temp_dir / "bad.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(ValueError):
            AnnotationCache.load(path)

    def test_annotate_and_missing(self, sample_catalog):
        """Test cached keywords are attached without mutating the catalog."""
        from coursescout.enrichment.cache import AnnotationCache

        cache = AnnotationCache(entries={"2": "sql, indexing"})
        annotated = cache.annotate(sample_catalog)

        assert annotated[1].search_keywords == "sql, indexing"
        assert sample_catalog[1].search_keywords == ""
        assert [c.id for c in cache.missing(sample_catalog)] == ["1", "3"]


# ─────────────────────────────────────────────────────────────────────────────
# Enricher Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestParseKeywords:
    """Tests for keyword normalization."""

    def test_normalization(self):
        """Test separators, bullets and duplicates."""
        from coursescout.enrichment.enricher import parse_keywords

        text = "- SQL\n- joins，indexing、SQL; \"transactions\""

        assert parse_keywords(text) == "SQL, joins, indexing, transactions"

    def test_cap(self):
        """Test the keyword cap."""
        from coursescout.enrichment.enricher import parse_keywords

        assert parse_keywords("a, b, c, d", max_keywords=2) == "a, b"


class TestKeywordEnricher:
    """Tests for background enrichment."""

    def _enricher(self, oracle, cache, sleep, batch_size=2, outline_loader=None):
        from coursescout.enrichment.enricher import KeywordEnricher
        from coursescout.shared.config import EnrichmentConfig

        config = EnrichmentConfig(batch_size=batch_size, batch_delay_seconds=0.5, max_keywords=5)
        return KeywordEnricher(oracle, cache, config=config, outline_loader=outline_loader, sleep=sleep)

    def test_fills_missing_in_batches(self, make_oracle, make_course, sleep_recorder, temp_dir):
        """Test every unannotated course is processed and saved."""
        from coursescout.enrichment.cache import AnnotationCache
        from coursescout.search.prompts import ENRICHMENT_HEADER

        courses = [make_course(str(i)) for i in range(5)]
        cache = AnnotationCache(temp_dir / "a.json", entries={"0": "already"})
        oracle = make_oracle(lambda prompt: "alpha, beta")

        added = asyncio.run(self._enricher(oracle, cache, sleep_recorder).run(courses))

        assert added == 4
        assert cache.get("0") == "already"
        assert cache.get("4") == "alpha, beta"
        assert len(oracle.prompts_for(ENRICHMENT_HEADER)) == 4
        assert sleep_recorder.delays == [0.5]
        assert (temp_dir / "a.json").exists()

    def test_failure_isolated(self, make_oracle, make_course, sleep_recorder):
        """Test a failing course is skipped and retried on a later run."""
        from coursescout.enrichment.cache import AnnotationCache
        from coursescout.shared.errors import TransientBackendError

        courses = [make_course("1"), make_course("2")]
        cache = AnnotationCache()

        def responder(prompt):
            if "Course 2" in prompt:
                return TransientBackendError("rate limited")
            return "kw"

        added = asyncio.run(self._enricher(make_oracle(responder), cache, sleep_recorder).run(courses))

        assert added == 1
        assert [c.id for c in cache.missing(courses)] == ["2"]

    def test_limit(self, make_oracle, make_course, sleep_recorder):
        """Test the limit caps processed courses."""
        from coursescout.enrichment.cache import AnnotationCache

        cache = AnnotationCache()
        courses = [make_course(str(i)) for i in range(5)]

        added = asyncio.run(
            self._enricher(make_oracle(lambda p: "kw"), cache, sleep_recorder).run(courses, limit=3)
        )

        assert added == 3

    def test_outline_included(self, make_oracle, make_course, sleep_recorder):
        """Test syllabus text from the loader reaches the prompt."""
        from coursescout.enrichment.cache import AnnotationCache

        async def loader(course):
            return f"Syllabus of {course.name}: weekly quizzes"

        oracle = make_oracle(lambda p: "quizzes")
        enricher = self._enricher(oracle, AnnotationCache(), sleep_recorder, outline_loader=loader)
        asyncio.run(enricher.run([make_course("1")]))

        assert "weekly quizzes" in oracle.prompts[0]

    def test_pause_blocks_until_resume(self, make_oracle, make_course, sleep_recorder):
        """Test a paused enricher waits before its next batch."""
        from coursescout.enrichment.cache import AnnotationCache

        oracle = make_oracle(lambda p: "kw")
        enricher = self._enricher(oracle, AnnotationCache(), sleep_recorder, batch_size=1)

        async def scenario():
            enricher.pause()
            task = asyncio.create_task(enricher.run([make_course("1"), make_course("2")]))
            await asyncio.sleep(0.01)
            calls_while_paused = len(oracle.prompts)
            enricher.resume()
            added = await task
            return calls_while_paused, added

        calls_while_paused, added = asyncio.run(scenario())

        assert calls_while_paused == 0
        assert added == 2
        assert not enricher.is_paused

    def test_stop_releases_paused_run(self, make_oracle, make_course, sleep_recorder):
        """Test stop ends a paused run without further calls."""
        from coursescout.enrichment.cache import AnnotationCache

        oracle = make_oracle(lambda p: "kw")
        enricher = self._enricher(oracle, AnnotationCache(), sleep_recorder)

        async def scenario():
            enricher.pause()
            task = asyncio.create_task(enricher.run([make_course("1")]))
            await asyncio.sleep(0.01)
            enricher.stop()
            return await task

        assert asyncio.run(scenario()) == 0
        assert oracle.prompts == []

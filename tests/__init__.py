"""
Tests Package - Unit and integration tests for Course Scout.
============================================================

Test modules:
- test_oracle: Backoff, backends, client retries, shard fan-out
- test_preprocessor: Directive tokenizer, time codes, instructions
- test_extractor: Attribute parsing, heuristic fallback, cleanup
- test_stages: Sharding, coarse filter, precise matcher, scorer
- test_postfilter: Directive-derived filters
- test_legacy: Keyword search fallback
- test_enrichment: Annotation cache and keyword enricher
- test_orchestrator: End-to-end scenarios, cancellation, fail-over
- test_config: Settings, file helpers, course records

Run tests with:
    pytest tests/
    pytest tests/ -v
"""

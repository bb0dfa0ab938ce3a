"""
Enrichment Module - Background keyword annotation.
==================================================

This module handles:
- cache: Append-only per-course keyword store
- enricher: Batched, pausable keyword extraction through the oracle
"""

from coursescout.enrichment.cache import AnnotationCache
from coursescout.enrichment.enricher import KeywordEnricher, parse_keywords

__all__ = [
    "AnnotationCache",
    "KeywordEnricher",
    "parse_keywords",
]

"""
Search Module - The staged course search pipeline.
==================================================

This module handles:
- directives / preprocessor: Directive tokens -> rewritten query + Instructions
- extractor: Query -> 14-attribute schema (decompose + clean)
- coarse / precise / scorer: Sharded oracle stages
- postfilter: Deterministic directive filters
- legacy: Oracle-free keyword search (fail-over target)
- orchestrator: Stage sequencing, cancellation and fail-over
"""

from coursescout.search.coarse import CoarseFilter
from coursescout.search.directives import DirectiveKind, DirectiveToken, tokenize_directives
from coursescout.search.extractor import AttributeExtractor, heuristic_attributes
from coursescout.search.legacy import keyword_search, rank_courses, smart_tokenize
from coursescout.search.orchestrator import Orchestrator
from coursescout.search.postfilter import PostFilterEngine
from coursescout.search.precise import PreciseMatcher, PreciseOutcome
from coursescout.search.preprocessor import PreprocessedQuery, QueryPreprocessor, preprocess_query
from coursescout.search.scorer import Scorer, rank_by_score

__all__ = [
    # Directives & preprocessing
    "DirectiveKind",
    "DirectiveToken",
    "tokenize_directives",
    "PreprocessedQuery",
    "QueryPreprocessor",
    "preprocess_query",
    # Oracle stages
    "AttributeExtractor",
    "heuristic_attributes",
    "CoarseFilter",
    "PreciseMatcher",
    "PreciseOutcome",
    "Scorer",
    "rank_by_score",
    # Deterministic stages
    "PostFilterEngine",
    "keyword_search",
    "rank_courses",
    "smart_tokenize",
    # Orchestration
    "Orchestrator",
]

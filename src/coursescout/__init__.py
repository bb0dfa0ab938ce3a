"""
Course Scout - Oracle-orchestrated course search
================================================

Turns a free-text description of the course a student wants into a ranked
subset of a large local course catalog:

- Directive tokens ({free}, {exclude}, {evening}, ...) become structured
  post-filter instructions
- A reasoning oracle decomposes the query into a 14-attribute schema
- The catalog is sharded and filtered coarsely, optionally matched precisely,
  then scored, all through concurrent oracle calls
- Any unrecoverable failure degrades to a deterministic keyword search

Flow:
    Query → Preprocess → Extract → Coarse filter → [Precise match] → Score → Post-filter
"""

__version__ = "0.1.0"
__author__ = "Course Scout Team"
__license__ = "MIT"

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "shared",
    "oracle",
    "search",
    "enrichment",
    "cli",
]

"""
CLI Module - Command-line interface for Course Scout.
=====================================================

Provides CLI commands for:
- Searching the catalog through the oracle pipeline
- Keyword-only (legacy) search
- Inspecting directive tokens
- Background keyword enrichment

Usage:
    coursescout --help
    coursescout search "Monday afternoon databases {exclude}Wang"
    coursescout legacy "calculus"
    coursescout enrich --limit 100

Components:
- main: Typer CLI application
"""

from coursescout.cli.main import app, cli

__all__ = ["app", "cli"]

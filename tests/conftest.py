"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Sample catalog fixtures
- Stub oracle recording every prompt
- Temporary directories
- Settings overrides
"""

import tempfile
from pathlib import Path
from typing import Callable, Generator, Union

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Sample Data Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_catalog_data() -> list[dict]:
    """Three raw course records, using a mix of field spellings."""
    return [
        {
            "cos_id": "1",
            "code": "CS101",
            "name": "Introduction to Programming",
            "teacher": "Chen",
            "time": "T34-EC114",
            "room": "EC114",
            "credits": "3",
            "acy": 113,
            "sem": 1,
            "dep_name": "Computer Science",
            "cos_type": "Required",
            "paths": [
                {"type": "Bachelor", "college": "College of Computing", "department": "Computer Science", "category": "Core"}
            ],
        },
        {
            "id": "2",
            "code": "X220",
            "name": "Database Systems",
            "teacher": "Wang",
            "time": "M56",
            "room": "X201",
            "credits": 3,
            "dep_name": "X",
            "course_type": "Elective",
            "paths": [{"type": "Bachelor", "college": "College X", "department": "X", "category": ""}],
        },
        {
            "id": "3",
            "code": "GE150",
            "name": "Art Appreciation",
            "teacher": "Lin",
            "time": "Fab",
            "room": "A101",
            "credits": 2,
            "dep_name": "Center for General Education",
            "course_type": "Elective",
            "paths": [{"type": "general education", "college": "", "department": "", "category": "Core curriculum"}],
        },
    ]


@pytest.fixture
def sample_catalog(sample_catalog_data: list[dict]):
    """Validated CourseRecord list."""
    from coursescout.shared.utils import parse_catalog
    return parse_catalog(sample_catalog_data)


@pytest.fixture
def make_course() -> Callable:
    """Factory for ad-hoc course records."""
    from coursescout.shared.schemas import CourseRecord

    def _make(course_id: str, **fields) -> "CourseRecord":
        fields.setdefault("name", f"Course {course_id}")
        return CourseRecord(id=course_id, **fields)

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Oracle Fixtures
# ─────────────────────────────────────────────────────────────────────────────


Response = Union[str, BaseException]


class StubOracle:
    """
    In-memory oracle.

    ``responder`` maps a prompt to either the response text or an exception
    to raise. Every prompt is recorded in call order.
    """

    def __init__(self, responder: Callable[[str], Response]):
        self.responder = responder
        self.prompts: list[str] = []
        self.calls: list[tuple[float, int]] = []

    async def invoke(self, prompt: str, temperature: float, reasoning_budget: int = 0) -> str:
        self.prompts.append(prompt)
        self.calls.append((temperature, reasoning_budget))
        result = self.responder(prompt)
        if isinstance(result, BaseException):
            raise result
        return result

    def prompts_for(self, header: str) -> list[str]:
        return [p for p in self.prompts if p.startswith(header)]


@pytest.fixture
def make_oracle() -> Callable[..., StubOracle]:
    """Factory for StubOracle instances."""
    return StubOracle


@pytest.fixture
def constant_oracle(make_oracle) -> StubOracle:
    """Oracle answering "2" to every prompt."""
    return make_oracle(lambda prompt: "2")


# ─────────────────────────────────────────────────────────────────────────────
# Settings Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def test_settings():
    """Default settings, independent of the YAML file and search-mode env overrides."""
    from coursescout.shared.config import Settings

    settings = Settings()
    settings.search_mode = None
    settings.oracle_provider = None
    return settings


@pytest.fixture
def sleep_recorder():
    """Async sleep replacement recording requested delays."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons between tests."""
    from coursescout.oracle.client import clear_client_cache

    clear_client_cache()
    yield
    clear_client_cache()

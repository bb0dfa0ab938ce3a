"""
Tests for Attribute Extraction.
===============================

Tests for:
- Schemas: AttributeCondition / AttributeSet validation
- Parsing: JSON location and attribute payloads
- Heuristic fallback: weekday, time-of-day and department detection
- AttributeExtractor: decompose + clean with fallbacks
"""

import asyncio

import pytest


DECOMPOSE_JSON = """Here you go:
```json
{"name": ["required", [["database", "DB"]]],
 "time": ["optional", [["M56789", "M5"]]],
 "deptName": ["required", [["X"]]],
 "unknownAttr": ["required", [["ignored"]]]}
```"""


# ─────────────────────────────────────────────────────────────────────────────
# Schema Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAttributeSchema:
    """Tests for the attribute query models."""

    def test_empty_groups_force_none(self):
        """Test a condition without keywords cannot eliminate courses."""
        from coursescout.shared.schemas import AttributeCondition, Necessity

        condition = AttributeCondition(necessity=Necessity.REQUIRED, keyword_groups=[[], ["  "]])

        assert condition.necessity == Necessity.NONE
        assert not condition.is_active

    def test_bare_string_group(self):
        """Test a bare string becomes a one-keyword group."""
        from coursescout.shared.schemas import AttributeCondition, Necessity

        condition = AttributeCondition(necessity=Necessity.OPTIONAL, keyword_groups=["law", ["a", "b"]])

        assert condition.keyword_groups == [["law"], ["a", "b"]]
        assert condition.describe() == "[law] AND [a, b]"

    def test_every_attribute_present(self):
        """Test the set always holds all 14 attributes."""
        from coursescout.shared.schemas import AttributeSet, CourseAttribute

        attributes = AttributeSet()

        assert len(list(attributes)) == len(CourseAttribute) == 14
        assert attributes.is_empty

    def test_from_payload_object_shape(self):
        """Test the {necessity, keywords} object shape and field aliases."""
        from coursescout.shared.schemas import AttributeSet, CourseAttribute, Necessity

        attributes = AttributeSet.from_payload(
            {"dep_name": {"necessity": "Optional", "keywords": [["CS"]]}}
        )

        assert attributes[CourseAttribute.DEPT_NAME].necessity == Necessity.OPTIONAL

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "required"},
            {"name": ["sometimes", [["x"]]]},
            {"name": ["required", "not-a-list"]},
            ["name"],
        ],
    )
    def test_from_payload_rejects_bad_shapes(self, payload):
        """Test malformed payloads raise MalformedResponseError."""
        from coursescout.shared.errors import MalformedResponseError
        from coursescout.shared.schemas import AttributeSet

        with pytest.raises(MalformedResponseError):
            AttributeSet.from_payload(payload)


# ─────────────────────────────────────────────────────────────────────────────
# Parsing Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAttributeParsing:
    """Tests for attribute response parsing."""

    def test_json_inside_code_fence(self):
        """Test the object is found inside prose and code fences."""
        from coursescout.search.parsing import parse_attribute_response
        from coursescout.shared.schemas import CourseAttribute, Necessity

        attributes = parse_attribute_response(DECOMPOSE_JSON)

        assert attributes[CourseAttribute.NAME].keyword_groups == [["database", "DB"]]
        assert attributes[CourseAttribute.TIME].necessity == Necessity.OPTIONAL
        assert attributes[CourseAttribute.TEACHER].necessity == Necessity.NONE

    def test_skips_non_object_braces(self):
        """Test stray braces before the object are skipped."""
        from coursescout.search.parsing import extract_json_object

        assert extract_json_object('use {curly} then {"a": 1}') == {"a": 1}

    def test_no_json(self):
        """Test plain text is malformed."""
        from coursescout.search.parsing import parse_attribute_response
        from coursescout.shared.errors import MalformedResponseError

        with pytest.raises(MalformedResponseError):
            parse_attribute_response("2")

    def test_base_fills_missing(self):
        """Test attributes absent from a response come from the base set."""
        from coursescout.search.parsing import parse_attribute_response
        from coursescout.shared.schemas import CourseAttribute

        base = parse_attribute_response(DECOMPOSE_JSON)
        updated = parse_attribute_response('{"name": ["required", [["database"]]]}', base=base)

        assert updated[CourseAttribute.NAME].keyword_groups == [["database"]]
        assert updated[CourseAttribute.TIME] == base[CourseAttribute.TIME]


# ─────────────────────────────────────────────────────────────────────────────
# Heuristic Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestHeuristicAttributes:
    """Tests for the substring fallback."""

    def test_weekday_and_afternoon(self):
        """Test weekday + time of day yields combined time codes."""
        from coursescout.search.extractor import heuristic_attributes
        from coursescout.shared.schemas import CourseAttribute, Necessity

        attributes = heuristic_attributes("Monday afternoon, department X")

        time = attributes[CourseAttribute.TIME]
        assert time.necessity == Necessity.REQUIRED
        assert time.keyword_groups == [["M56789", "M5", "M6", "M7", "M8", "M9"]]
        assert attributes[CourseAttribute.PATHS].keyword_groups == [["X"]]

    def test_weekday_only(self):
        """Test a bare weekday yields the day letter and its words."""
        from coursescout.search.extractor import heuristic_attributes
        from coursescout.shared.schemas import CourseAttribute

        attributes = heuristic_attributes("something on Friday")

        assert attributes[CourseAttribute.TIME].keyword_groups == [["F", "friday", "星期五"]]

    def test_department_alias_expansion(self):
        """Test configured department aliases expand the paths group."""
        from coursescout.search.extractor import heuristic_attributes
        from coursescout.shared.config import VocabularyConfig
        from coursescout.shared.schemas import CourseAttribute

        vocabulary = VocabularyConfig(department_aliases={"cs": ["Computer Science", "CSIE"]})
        attributes = heuristic_attributes("cs electives", vocabulary)

        assert attributes[CourseAttribute.PATHS].keyword_groups == [["Computer Science", "CSIE"]]

    def test_chinese_department(self):
        """Test a '<name>系' mention is captured."""
        from coursescout.search.extractor import heuristic_attributes
        from coursescout.shared.config import VocabularyConfig
        from coursescout.shared.schemas import CourseAttribute

        attributes = heuristic_attributes("外文系的課", VocabularyConfig(department_aliases={}))

        assert attributes[CourseAttribute.PATHS].keyword_groups == [["外文"]]

    def test_nothing_recognized(self):
        """Test an unrelated query yields an empty set."""
        from coursescout.search.extractor import heuristic_attributes

        assert heuristic_attributes("something fun").is_empty


# ─────────────────────────────────────────────────────────────────────────────
# Extractor Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAttributeExtractor:
    """Tests for the two-step extraction."""

    def test_decompose_and_clean(self, make_oracle):
        """Test a parsed decomposition is cleaned and deptName demoted."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.search.prompts import CLEAN_HEADER, DECOMPOSE_HEADER
        from coursescout.shared.schemas import CourseAttribute, Necessity

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return DECOMPOSE_JSON
            return '{"name": ["required", [["database"]]]}'

        oracle = make_oracle(responder)
        attributes = asyncio.run(AttributeExtractor(oracle).extract("databases on monday"))

        assert attributes[CourseAttribute.NAME].keyword_groups == [["database"]]
        assert attributes[CourseAttribute.DEPT_NAME].necessity == Necessity.OPTIONAL
        assert len(oracle.prompts_for(DECOMPOSE_HEADER)) == 1
        assert len(oracle.prompts_for(CLEAN_HEADER)) == 1

    def test_heuristic_fallback_and_clean_fallback(self, constant_oracle):
        """Test unparseable responses fall back to the heuristic and keep it uncleaned."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.shared.schemas import CourseAttribute

        attributes = asyncio.run(
            AttributeExtractor(constant_oracle).extract("Monday afternoon, department X")
        )

        assert attributes[CourseAttribute.TIME].keyword_groups[0][0] == "M56789"
        assert attributes[CourseAttribute.PATHS].keyword_groups == [["X"]]
        assert len(constant_oracle.prompts) == 2

    def test_clean_emptying_everything_keeps_input(self, make_oracle):
        """Test a cleanup that removes every keyword is ignored."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.search.prompts import DECOMPOSE_HEADER
        from coursescout.shared.schemas import CourseAttribute

        def responder(prompt):
            if prompt.startswith(DECOMPOSE_HEADER):
                return DECOMPOSE_JSON
            return '{"name": ["none", []], "time": ["none", []], "deptName": ["none", []]}'

        attributes = asyncio.run(AttributeExtractor(make_oracle(responder)).extract("databases"))

        assert attributes[CourseAttribute.NAME].keyword_groups == [["database", "DB"]]

    def test_nothing_extractable_raises(self, constant_oracle):
        """Test extraction fails when neither oracle nor heuristic yields anything."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.shared.errors import MalformedResponseError

        with pytest.raises(MalformedResponseError):
            asyncio.run(AttributeExtractor(constant_oracle).extract("something fun"))

    def test_backend_error_propagates(self, make_oracle):
        """Test an unreachable backend is not masked by the heuristic."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.shared.errors import TransientBackendError

        oracle = make_oracle(lambda prompt: TransientBackendError("down"))

        with pytest.raises(TransientBackendError):
            asyncio.run(AttributeExtractor(oracle).extract("Monday afternoon"))

    def test_prompt_surfaces_directives(self, constant_oracle):
        """Test free-time and exclude instructions appear in the decompose prompt."""
        from coursescout.search.extractor import AttributeExtractor
        from coursescout.search.preprocessor import QueryPreprocessor

        pre = QueryPreprocessor(["M1234n"]).process("{free} Monday {exclude}Wang")
        asyncio.run(AttributeExtractor(constant_oracle).extract(pre.text, pre.instructions))

        prompt = constant_oracle.prompts[0]
        assert "Free-time directive" in prompt
        assert "Exclude directive" in prompt and "Wang" in prompt

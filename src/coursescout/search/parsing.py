"""
Parsing Module - Strict validation of free-text oracle responses.
================================================================

Every oracle response is treated as untrusted text. Parsers either return
a validated value or raise MalformedResponseError; they never guess.
"""

import json
import re
from typing import Any, Optional

from coursescout.shared.errors import MalformedResponseError
from coursescout.shared.schemas import AttributeSet, ScoreRecord

_INTEGER = re.compile(r"\d+")
_NONE_SENTINEL = re.compile(r"\bnone\b|無", re.IGNORECASE)
_SCORE_TUPLE = re.compile(
    r"(-?\d+)\s*:\s*(-?\d+)\s*:\s*(-?\d+)\s*:\s*(-?\d+)\s*:\s*(-?\d+)\s*:\s*(-?\d+)"
)


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Locate the first well-formed JSON object in a response.

    Handles code fences and surrounding prose by trying to decode at every
    ``{`` until one succeeds.

    Raises:
        MalformedResponseError: If no JSON object is found
    """
    decoder = json.JSONDecoder()
    position = text.find("{")
    while position != -1:
        try:
            value, _ = decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            position = text.find("{", position + 1)
            continue
        if isinstance(value, dict):
            return value
        position = text.find("{", position + 1)

    raise MalformedResponseError("No JSON object in response", response_text=text[:500])


def parse_attribute_response(text: str, base: Optional[AttributeSet] = None) -> AttributeSet:
    """
    Parse an attribute-set response.

    Args:
        text: Raw oracle text
        base: Attributes missing from the response are taken from here

    Returns:
        Validated AttributeSet

    Raises:
        MalformedResponseError: If no valid attribute object is found
    """
    payload = extract_json_object(text)
    try:
        return AttributeSet.from_payload(payload, base=base)
    except MalformedResponseError as e:
        e.response_text = text[:500]
        raise


def parse_index_response(text: str, size: int) -> list[int]:
    """
    Parse the course numbers selected for one shard.

    Args:
        text: Raw oracle text
        size: Number of courses in the shard

    Returns:
        Valid 1-based local indices, deduplicated, in first-seen order.
        An explicit "none" answer yields an empty list.

    Raises:
        MalformedResponseError: If the text holds neither a valid index
            nor the none sentinel
    """
    indices: list[int] = []
    seen: set[int] = set()
    for match in _INTEGER.finditer(text):
        value = int(match.group())
        if 1 <= value <= size and value not in seen:
            seen.add(value)
            indices.append(value)

    if indices:
        return indices
    if _NONE_SENTINEL.search(text):
        return []

    raise MalformedResponseError(
        f"No valid course number in response (shard size {size})", response_text=text[:500]
    )


def parse_score_response(text: str, size: int) -> dict[int, ScoreRecord]:
    """
    Parse ``index:total:quality:time:path:bonus`` tuples.

    The claimed total is discarded: components are clamped to their ranges
    and the total recomputed. The first tuple for an index wins. A response
    without tuples yields an empty map.

    Args:
        text: Raw oracle text
        size: Number of courses in the chunk

    Returns:
        Mapping of 1-based local index to ScoreRecord
    """
    scores: dict[int, ScoreRecord] = {}
    for match in _SCORE_TUPLE.finditer(text):
        index, _claimed_total, quality, time, path, bonus = (int(g) for g in match.groups())
        if not 1 <= index <= size or index in scores:
            continue
        scores[index] = ScoreRecord(quality=quality, time=time, path=path, bonus=bonus)
    return scores

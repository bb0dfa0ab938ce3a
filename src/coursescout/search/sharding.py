"""
Sharding Module - Catalog partitioning and deterministic merging.
================================================================

Shards are contiguous, disjoint slices of a course list. Merging walks
shard results in ascending shard order and keeps the first occurrence of
each course id, so the merged order never depends on which shard finished
first.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from coursescout.shared.schemas import CourseRecord
from coursescout.shared.utils import ceil_div, chunk_list


@dataclass(frozen=True)
class Shard:
    """A contiguous slice of the candidate list."""

    index: int
    offset: int
    courses: tuple[CourseRecord, ...]

    def __len__(self) -> int:
        return len(self.courses)

    def select(self, local_indices: Iterable[int]) -> list[CourseRecord]:
        """Map 1-based local indices back to courses."""
        return [self.courses[i - 1] for i in local_indices if 1 <= i <= len(self.courses)]


def coarse_shard_size(catalog_size: int, target_shards: int, min_shard_size: int) -> int:
    """
    Chunk size for the coarse filter.

    Aims for ``target_shards`` shards but never goes below ``min_shard_size``
    courses per shard, so a small catalog is not split into tiny calls.
    """
    if target_shards < 1:
        raise ValueError(f"target_shards must be positive, got {target_shards}")
    return max(min_shard_size, ceil_div(catalog_size, target_shards), 1)


def make_shards(courses: Sequence[CourseRecord], size: int) -> list[Shard]:
    """
    Split courses into shards of at most ``size``.

    The shard count is ``ceil(len(courses) / size)`` and every course lands
    in exactly one shard.
    """
    return [
        Shard(index=i, offset=i * size, courses=tuple(chunk))
        for i, chunk in enumerate(chunk_list(courses, size))
    ]


def merge_unique(shard_results: Iterable[Sequence[CourseRecord]]) -> list[CourseRecord]:
    """Union shard results in order, dropping repeated course ids."""
    seen: set[str] = set()
    merged: list[CourseRecord] = []
    for courses in shard_results:
        for course in courses:
            if course.id not in seen:
                seen.add(course.id)
                merged.append(course)
    return merged

#!/usr/bin/env python3
"""
Feed aggregation.

Merges per-source normalization results into the combined, newest-first
episode list. Failures are logged and dropped; there is no deduplication
across sources.
"""

from typing import Iterable, List, Tuple

from config import get_logger
from errors import NormalizationFailure
from models import Episode
from normalizer import NormalizationResult

logger = get_logger("aggregator")


def partition_results(results: Iterable[NormalizationResult]) -> Tuple[List[Episode], List[NormalizationFailure]]:
    """Split results into (episodes, failures), keeping input order in both."""
    episodes: List[Episode] = []
    failures: List[NormalizationFailure] = []
    for result in results:
        if isinstance(result, Episode):
            episodes.append(result)
        elif isinstance(result, NormalizationFailure):
            failures.append(result)
        else:
            logger.warning(f"Ignoring unexpected aggregation input: {type(result).__name__}")
    return episodes, failures


def sort_episodes(episodes: Iterable[Episode]) -> List[Episode]:
    """Newest first; unknown dates last; ties keep their input order."""
    # sorted() is stable with reverse=True, so equal keys stay in input order
    return sorted(episodes, key=lambda episode: episode.published_at.sort_key(), reverse=True)


def aggregate(results: Iterable[NormalizationResult]) -> List[Episode]:
    """Combine normalization results into the sorted episode list.

    Args:
        results: Episodes and NormalizationFailures, one per source.

    Returns:
        Episodes sorted by publish date descending; empty if every source failed.
    """
    episodes, failures = partition_results(results)
    for failure in failures:
        logger.warning(f"Skipping source {failure.source_label}: {failure.reason.value}"
                       + (f" ({failure.detail})" if failure.detail else ""))
    if not episodes:
        logger.warning("No episodes available from any source")
    else:
        logger.info(f"Aggregated {len(episodes)} episodes ({len(failures)} sources skipped)")
    return sort_episodes(episodes)


__all__ = ["aggregate", "partition_results", "sort_episodes"]

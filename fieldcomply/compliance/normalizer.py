"""Merge adapter outputs into one deduplicated, ordered issue sequence."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from fieldcomply.models import ComplianceIssue

logger = logging.getLogger(__name__)


def _preference(issue: ComplianceIssue) -> tuple:
    # Among duplicates the most recently fetched copy wins; the remaining
    # fields only break ties so the winner never depends on input order.
    return (
        issue.source_ref.fetched_at,
        issue.status.value,
        issue.id,
        issue.model_dump_json(),
    )


def _order(issue: ComplianceIssue) -> tuple:
    # issued_date descending with undated issues last, then id ascending
    issued = issue.issued_date or date.min
    return (-issued.toordinal(), issue.id)


def normalize_issues(batches: Iterable[Iterable[ComplianceIssue]]) -> list[ComplianceIssue]:
    """Deduplicate and order issues from any number of adapter batches.

    Duplicates share ``(category, native_id)``. The result is a pure
    function of the set of issues supplied: feeding a batch twice, or
    supplying batches in a different order, yields the same sequence.
    """
    merged: dict[tuple[str, str], ComplianceIssue] = {}
    duplicates = 0
    for batch in batches:
        for issue in batch:
            key = issue.dedupe_key
            current = merged.get(key)
            if current is None:
                merged[key] = issue
                continue
            duplicates += 1
            if _preference(issue) > _preference(current):
                merged[key] = issue

    if duplicates:
        logger.debug("Dropped %d duplicate issue(s)", duplicates)
    return sorted(merged.values(), key=_order)


def normalize_by_building(
    batches: Iterable[Iterable[ComplianceIssue]],
) -> dict[str, list[ComplianceIssue]]:
    """Normalize a multi-building batch, grouping the result per building."""
    grouped: dict[str, list[ComplianceIssue]] = {}
    for batch in batches:
        for issue in batch:
            grouped.setdefault(issue.building_id, []).append(issue)
    return {
        building_id: normalize_issues([issues])
        for building_id, issues in sorted(grouped.items())
    }

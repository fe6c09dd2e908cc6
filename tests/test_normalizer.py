"""Tests for issue deduplication and ordering."""

from __future__ import annotations

import itertools
from datetime import date, datetime, timezone

from fieldcomply.compliance.normalizer import normalize_by_building, normalize_issues
from fieldcomply.models import Category, ComplianceIssue, IssueStatus, Severity, SourceRef

EARLY = datetime(2026, 10, 20, 9, 0, tzinfo=timezone.utc)
LATE = datetime(2026, 10, 21, 9, 0, tzinfo=timezone.utc)


def _make_issue(
    native_id: str,
    issued: date | None = date(2026, 9, 1),
    *,
    category: Category = Category.HOUSING,
    building_id: str = "B",
    status: IssueStatus = IssueStatus.OPEN,
    fetched_at: datetime = EARLY,
    title: str = "",
) -> ComplianceIssue:
    return ComplianceIssue(
        id=f"{category.value.lower()}-{native_id}",
        building_id=building_id,
        category=category,
        severity=Severity.MEDIUM,
        status=status,
        issued_date=issued,
        title=title,
        source_ref=SourceRef(source="test", native_id=native_id, fetched_at=fetched_at),
    )


class TestNormalizeIssues:
    def test_orders_newest_first_with_undated_last(self) -> None:
        issues = [
            _make_issue("1", date(2026, 8, 1)),
            _make_issue("2", None),
            _make_issue("3", date(2026, 10, 1)),
            _make_issue("4", date(2026, 8, 1)),
        ]
        result = normalize_issues([issues])
        assert [i.source_ref.native_id for i in result] == ["3", "1", "4", "2"]

    def test_duplicates_collapse(self) -> None:
        issue = _make_issue("1")
        result = normalize_issues([[issue], [issue]])
        assert result == [issue]

    def test_idempotent(self) -> None:
        batch = [_make_issue(str(n), date(2026, 9, n)) for n in range(1, 6)]
        once = normalize_issues([batch])
        assert normalize_issues([once]) == once
        assert normalize_issues([batch, batch]) == once

    def test_independent_of_batch_order(self) -> None:
        batches = [
            [_make_issue("1"), _make_issue("2", date(2026, 9, 5))],
            [_make_issue("1", fetched_at=LATE, status=IssueStatus.PENDING)],
            [_make_issue("9", None, category=Category.FIRE)],
        ]
        expected = normalize_issues(batches)
        for perm in itertools.permutations(batches):
            assert normalize_issues(list(perm)) == expected

    def test_latest_fetch_wins(self) -> None:
        stale = _make_issue("1", status=IssueStatus.OPEN, fetched_at=EARLY)
        fresh = _make_issue("1", status=IssueStatus.PENDING, fetched_at=LATE)
        [winner] = normalize_issues([[fresh], [stale]])
        assert winner.status == IssueStatus.PENDING

    def test_same_native_id_in_different_categories_is_kept(self) -> None:
        result = normalize_issues([[_make_issue("1"), _make_issue("1", category=Category.FIRE)]])
        assert len(result) == 2

    def test_tie_break_is_deterministic(self) -> None:
        a = _make_issue("1", title="first copy")
        b = _make_issue("1", title="second copy")
        assert normalize_issues([[a], [b]]) == normalize_issues([[b], [a]])

    def test_empty(self) -> None:
        assert normalize_issues([]) == []


def test_normalize_by_building() -> None:
    grouped = normalize_by_building([
        [_make_issue("1", building_id="C"), _make_issue("2", building_id="B")],
        [_make_issue("1", building_id="C")],
    ])
    assert list(grouped) == ["B", "C"]
    assert len(grouped["C"]) == 1

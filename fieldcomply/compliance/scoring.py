"""Scoring Engine — category scores, overall score, status and letter grade.

Scores live on a 0.0-1.0 scale. A category whose source failed has an
*unknown* score (None); it is shown but never counted as 0.0 or 1.0.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Mapping

from pydantic import BaseModel

from fieldcomply.config import (
    CATEGORY_MAX_SEVERITY,
    CATEGORY_WEIGHTS,
    COMPLIANT_THRESHOLD,
    LETTER_GRADES,
    SEVERITY_WEIGHTS,
    WARNING_THRESHOLD,
    EngineSettings,
)
from fieldcomply.models import Category, ComplianceIssue

logger = logging.getLogger(__name__)


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class CategoryScore(BaseModel):
    """Score for one category, or a marker that it could not be computed."""

    category: Category
    score: float | None = None
    """None when the category's source was unavailable."""

    weighted_open_severity: float = 0.0
    open_issues: int = 0

    @property
    def is_known(self) -> bool:
        return self.score is not None


def weighted_open_severity(
    issues: Iterable[ComplianceIssue],
    severity_weights: Mapping[str, float] = SEVERITY_WEIGHTS,
) -> float:
    """Sum of severity weights over OPEN issues; other statuses contribute 0."""
    return sum(
        severity_weights.get(issue.severity.value, 0.0)
        for issue in issues
        if issue.is_open()
    )


def category_score(weighted: float, max_weighted: float) -> float:
    """``1 - weighted / max_weighted`` clamped to [0, 1]."""
    if max_weighted <= 0:
        return 1.0 if weighted <= 0 else 0.0
    return min(1.0, max(0.0, 1.0 - weighted / max_weighted))


def overall_score(
    scores: Mapping[str, float | None],
    weights: Mapping[str, float] = CATEGORY_WEIGHTS,
) -> float | None:
    """Weighted mean over the known category scores.

    Unknown (None) categories are dropped and the remaining weights
    re-normalised. Returns None when nothing is known.
    """
    total_weight = 0.0
    acc = 0.0
    for category, score in scores.items():
        if score is None:
            continue
        weight = weights.get(category, 0.0)
        if weight <= 0:
            continue
        total_weight += weight
        acc += weight * score
    if total_weight == 0:
        return None
    return min(1.0, max(0.0, acc / total_weight))


def grade_for_score(
    score: float | None,
    compliant_threshold: float = COMPLIANT_THRESHOLD,
    warning_threshold: float = WARNING_THRESHOLD,
) -> ComplianceStatus:
    """Map a score to compliant (>= 0.9), warning (>= 0.7) or critical."""
    if score is None:
        return ComplianceStatus.UNKNOWN
    if score >= compliant_threshold:
        return ComplianceStatus.COMPLIANT
    if score >= warning_threshold:
        return ComplianceStatus.WARNING
    return ComplianceStatus.CRITICAL


def letter_grade(score: float | None) -> str:
    """Letter grade for a 0.0-1.0 score; ``"N/A"`` when unknown."""
    if score is None:
        return "N/A"
    points = score * 100
    for minimum, grade in LETTER_GRADES:
        if points >= minimum:
            return grade
    return "F"


class ScoringEngine:
    """Compute per-category and overall scores from a normalised issue set.

    Parameters
    ----------
    settings:
        Supplies the severity weights, per-category normalisation
        constants, category weights and grade thresholds.
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()

    def score_category(
        self, category: Category, issues: Iterable[ComplianceIssue]
    ) -> CategoryScore:
        relevant = [i for i in issues if i.category == category]
        weighted = weighted_open_severity(relevant, self.settings.severity_weights)
        max_weighted = self.settings.category_max_severity.get(category.value)
        if max_weighted is None:
            logger.warning("No normalisation constant for %s; using 10.0", category.value)
            max_weighted = 10.0
        return CategoryScore(
            category=category,
            score=category_score(weighted, max_weighted),
            weighted_open_severity=weighted,
            open_issues=sum(1 for i in relevant if i.is_open()),
        )

    def score_building(
        self,
        issues: Iterable[ComplianceIssue],
        scored: Iterable[Category],
        degraded: Iterable[Category] = (),
    ) -> dict[Category, CategoryScore]:
        """Score every category in *scored*; categories in *degraded* are unknown."""
        issue_list = list(issues)
        degraded_set = set(degraded)
        result: dict[Category, CategoryScore] = {}
        for category in scored:
            if category in degraded_set:
                result[category] = CategoryScore(category=category)
            else:
                result[category] = self.score_category(category, issue_list)
        return result

    def overall(self, category_scores: Mapping[Category, CategoryScore]) -> float | None:
        return overall_score(
            {c.value: s.score for c, s in category_scores.items()},
            self.settings.category_weights,
        )

    def status(self, score: float | None) -> ComplianceStatus:
        return grade_for_score(
            score, self.settings.compliant_threshold, self.settings.warning_threshold
        )

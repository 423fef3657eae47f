"""Resolution of imported identities to registered employees."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import TYPE_CHECKING

from payroll_reconciler.calculators.types import (
    EmployeeIdentity,
    MatchResult,
    MatchType,
    ReviewAssessment,
    normalize_name,
)
from payroll_reconciler.config import ImportConfig

if TYPE_CHECKING:
    from payroll_reconciler.models import Employee

EXACT_SCORE = 90
ONE_NAME_SCORE = 50
SUBSTRING_SCORE = 30
ID_MATCH_CONFIDENCE = 100


def _contains_either_way(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def name_score(identity: EmployeeIdentity, employee: Employee) -> int:
    """Score how well the names of ``identity`` match ``employee``.

    Comparison is case- and diacritic-insensitive:
    both names equal 90, one name equal 50, a substring relation on
    first-vs-first or last-vs-last 30, otherwise 0.
    """
    first = normalize_name(identity.first_name)
    last = normalize_name(identity.last_name)
    cand_first = normalize_name(employee.first_name)
    cand_last = normalize_name(employee.last_name)

    first_equal = bool(first) and first == cand_first
    last_equal = bool(last) and last == cand_last

    if first_equal and last_equal:
        return EXACT_SCORE
    if first_equal or last_equal:
        return ONE_NAME_SCORE
    if _contains_either_way(first, cand_first) or _contains_either_way(last, cand_last):
        return SUBSTRING_SCORE
    return 0


def classify(score: int) -> MatchType:
    if score >= EXACT_SCORE:
        return MatchType.EXACT
    if score >= SUBSTRING_SCORE:
        return MatchType.PARTIAL
    return MatchType.NONE


class EmployeeMatcher:
    """Matches imported identities against a mandate's employees.

    Matching priority:
    1. External id equal to a candidate's external id -> exact, confidence 100
    2. Best name score over all candidates; ties keep the first candidate seen
    3. Classification of the winning score (>=90 exact, >=30 partial, else none)

    Matching is pure; whether to create an employee for an unmatched row is
    the caller's decision.
    """

    def __init__(self, config: ImportConfig | None = None):
        self.config = config or ImportConfig()

    def match(self, identity: EmployeeIdentity, candidates: Sequence[Employee]) -> MatchResult:
        """Resolve ``identity`` to one of ``candidates``."""
        if identity.external_id:
            for candidate in candidates:
                if candidate.external_id == identity.external_id:
                    return MatchResult(
                        employee=candidate,
                        match_type=MatchType.EXACT,
                        confidence=ID_MATCH_CONFIDENCE,
                    )

        best: Employee | None = None
        best_score = 0
        for candidate in candidates:
            score = name_score(identity, candidate)
            if score > best_score:
                best = candidate
                best_score = score

        match_type = classify(best_score)
        if match_type == MatchType.NONE:
            return MatchResult(employee=None, match_type=MatchType.NONE, confidence=best_score)
        return MatchResult(employee=best, match_type=match_type, confidence=best_score)

    def assess_review(
        self,
        identity: EmployeeIdentity,
        match: MatchResult,
        total_hours: Decimal,
    ) -> ReviewAssessment:
        """Derive the review flags for one imported employee."""
        assessment = ReviewAssessment()

        if match.match_type == MatchType.NONE:
            assessment.issues.append("No matching employee found")
        elif match.match_type == MatchType.PARTIAL:
            assessment.issues.append("Partial match, check the employee data")

        if match.employee is not None and not match.employee.is_active:
            assessment.issues.append("Employee is inactive")

        if total_hours > self.config.review_hours_threshold:
            assessment.issues.append(
                f"High number of hours (>{self.config.review_hours_threshold}h)"
            )

        if not identity.external_id:
            assessment.issues.append("No employee id in the source file")

        assessment.needs_review = bool(assessment.issues)
        return assessment

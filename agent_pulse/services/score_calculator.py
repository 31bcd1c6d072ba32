"""
agent_pulse/services/score_calculator.py
Aggregates check results into category totals, an overall score normalized
to 0–100 and a grade. Also generates a human-readable summary string.
"""
from typing import Any, Dict, List

from ..models import CategoryScore, Check, CheckCategory, CheckStatus
from ..rubric import GRADES


def calculate_category_scores(checks: List[Check]) -> Dict[str, CategoryScore]:
    """Plain sums per category. Skipped checks carry 0/0 and so add nothing."""
    totals: Dict[str, CategoryScore] = {c.value: CategoryScore() for c in CheckCategory}
    for check in checks:
        bucket = totals[check.category.value]
        bucket.score += check.score
        bucket.max_score += check.max_score
    return totals


def calculate_total(checks: List[Check]) -> int:
    return sum(c.score for c in checks if c.status != CheckStatus.SKIPPED)


def calculate_max(checks: List[Check]) -> int:
    return sum(c.max_score for c in checks if c.max_score > 0)


def normalize(total: int, max_score: int) -> int:
    if max_score <= 0:
        return 0
    return round(total / max_score * 100)


def grade_for(normalized_score: int) -> str:
    for floor, label in GRADES:
        if normalized_score >= floor:
            return label
    return GRADES[-1][1]


def generate_summary(normalized_score: int, grade: str, checks: List[Check]) -> str:
    """Generate a short human-readable summary of the analysis."""
    failing = [c for c in checks if c.max_score > 0 and c.status == CheckStatus.FAIL]
    partial = [c for c in checks if c.max_score > 0 and c.status == CheckStatus.PARTIAL]

    summary = f"AI agent readiness is {grade} ({normalized_score}/100)."
    if failing:
        summary += f" Failing: {', '.join(c.name for c in failing)}."
    if partial:
        summary += f" Needs improvement: {', '.join(c.name for c in partial)}."
    if not failing and not partial:
        summary += " No critical issues detected."
    skipped = [c for c in checks if c.status == CheckStatus.SKIPPED]
    if skipped:
        summary += f" Not measured: {', '.join(c.name for c in skipped)}."
    return summary


def score_and_summarize(checks: List[Check]) -> Dict[str, Any]:
    """
    Convenience function: compute every aggregate + summary and return them.
    Does NOT mutate the checks; caller decides when to persist.
    """
    total = calculate_total(checks)
    max_score = calculate_max(checks)
    normalized = normalize(total, max_score)
    grade = grade_for(normalized)
    return {
        "total_score": total,
        "max_score": max_score,
        "normalized_score": normalized,
        "grade": grade,
        "category_scores": calculate_category_scores(checks),
        "summary": generate_summary(normalized, grade, checks),
    }

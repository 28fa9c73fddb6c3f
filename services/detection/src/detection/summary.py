"""
Check result summary for AdLex.

Condenses a completed check's violations into counts and a coarse risk
level for reporting.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass

from adlex_common.models.check import Violation


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class CheckSummary:
    """Aggregate view of a check's violations.

    Attributes:
        total_violations: Number of violations.
        unique_violations: Number of distinct dictionary items involved.
        has_violations: Whether any violation was found.
        risk_level: Risk bucket derived from ``total_violations``.
    """

    total_violations: int
    unique_violations: int
    has_violations: bool
    risk_level: RiskLevel


def risk_level_for(violation_count: int) -> RiskLevel:
    if violation_count == 0:
        return RiskLevel.LOW
    if violation_count <= 2:
        return RiskLevel.MEDIUM
    if violation_count <= 5:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def summarize(violations: Sequence[Violation]) -> CheckSummary:
    """Build a :class:`CheckSummary`; violations without a dictionary id
    count toward the total but not toward ``unique_violations``."""
    total = len(violations)
    unique = {v.dictionary_id for v in violations if v.dictionary_id is not None}
    return CheckSummary(
        total_violations=total,
        unique_violations=len(unique),
        has_violations=total > 0,
        risk_level=risk_level_for(total),
    )

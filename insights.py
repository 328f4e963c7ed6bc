from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from analytics import UNCATEGORIZED, CategoryBreakdown, to_display

CONCENTRATION_THRESHOLD = Decimal(40)
UNCATEGORIZED_THRESHOLD = Decimal(20)
SIGNIFICANT_SHARE = Decimal(10)
DIVERSE_CATEGORY_COUNT = 5


class Severity(str, Enum):
    info = "info"
    warning = "warning"
    success = "success"


@dataclass(frozen=True)
class Insight:
    title: str
    message: str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
        }


def _share(value: Decimal) -> str:
    return str(to_display(value, 1))


def _concentration(breakdown: CategoryBreakdown) -> Optional[Insight]:
    top = breakdown.categories[0]
    if top.percentage_of_total > CONCENTRATION_THRESHOLD:
        return Insight(
            "High Concentration",
            f"{top.name} accounts for {_share(top.percentage_of_total)}% of your "
            "expenses. Consider diversifying your spending.",
            Severity.warning,
        )
    return None


def _uncategorized(breakdown: CategoryBreakdown) -> Optional[Insight]:
    item = breakdown.find(UNCATEGORIZED)
    if item is not None and item.percentage_of_total > UNCATEGORIZED_THRESHOLD:
        return Insight(
            "Uncategorized Expenses",
            f"You have {_share(item.percentage_of_total)}% uncategorized expenses. "
            "Consider creating categories for better tracking.",
            Severity.info,
        )
    return None


def _diversity(breakdown: CategoryBreakdown) -> Optional[Insight]:
    significant = sum(
        1 for c in breakdown.categories if c.percentage_of_total > SIGNIFICANT_SHARE
    )
    if significant > DIVERSE_CATEGORY_COUNT:
        return Insight(
            "Diverse Spending",
            f"Your expenses are well distributed across {significant} categories. "
            "Great job maintaining balanced spending!",
            Severity.success,
        )
    return None


RULES: tuple[Callable[[CategoryBreakdown], Optional[Insight]], ...] = (
    _concentration,
    _uncategorized,
    _diversity,
)


def generate_insights(breakdown: CategoryBreakdown) -> list[Insight]:
    if breakdown.is_empty:
        return [
            Insight(
                "No Data",
                "You haven't recorded any expenses in this period.",
                Severity.info,
            )
        ]
    insights: list[Insight] = []
    for rule in RULES:
        insight = rule(breakdown)
        if insight is not None:
            insights.append(insight)
    return insights

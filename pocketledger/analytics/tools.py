"""
Analysis tools that ground the financial assistants.

Each tool is a deterministic function over a FinancialContext. The chat
flow runs them before calling the model and embeds their output in the
system prompt, so every number the assistant quotes comes from here.

Outputs are plain dicts of JSON-friendly values.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from pocketledger.analytics.summary import (
    ZERO,
    FinancialSummary,
    generate_financial_summary,
    month_key,
)
from pocketledger.models.finance import (
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TransactionType,
)


TypeFilter = Literal["income", "expense", "all"]


class FinancialContext(BaseModel):
    """Everything an assistant may know about one user."""

    transactions: list[Transaction] = Field(default_factory=list)
    receipts: list[ReceiptImage] = Field(default_factory=list)
    profile: Optional[FinancialProfile] = None
    summary: FinancialSummary = Field(default_factory=FinancialSummary)

    @classmethod
    def build(
        cls,
        transactions: list[Transaction],
        receipts: Optional[list[ReceiptImage]] = None,
        profile: Optional[FinancialProfile] = None,
    ) -> "FinancialContext":
        return cls(
            transactions=transactions,
            receipts=receipts or [],
            profile=profile,
            summary=generate_financial_summary(transactions),
        )


def _filter(transactions: list[Transaction], type: TypeFilter) -> list[Transaction]:
    if type == "all":
        return transactions
    return [t for t in transactions if t.type == TransactionType(type)]


def _money(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def transaction_summary(
    context: FinancialContext,
    limit: int = 10,
    type: TypeFilter = "all",
) -> dict:
    """The `limit` most recent transactions with their total and categories."""
    selected = _filter(context.transactions, type)[:limit]
    return {
        "transactions": [t.to_context_dict() for t in selected],
        "totalAmount": float(sum((t.amount for t in selected), ZERO)),
        "categories": list(dict.fromkeys(t.category for t in selected)),
    }


def category_breakdown(context: FinancialContext, type: TypeFilter = "expense") -> dict:
    """Total, count and average per category, largest total first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for t in _filter(context.transactions, type):
        totals[t.category] += t.amount
        counts[t.category] += 1

    categories = [
        {
            "category": c,
            "total": float(totals[c]),
            "count": counts[c],
            "average": float(totals[c] / counts[c]),
        }
        for c in totals
    ]
    categories.sort(key=lambda row: row["total"], reverse=True)
    return {"categories": categories}


def monthly_trends(
    context: FinancialContext,
    type: TypeFilter = "expense",
    months: int = 6,
) -> dict:
    """Per-month totals for the latest `months` months with data, oldest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for t in _filter(context.transactions, type):
        key = month_key(t.date)
        totals[key] += t.amount
        counts[key] += 1

    latest = sorted(totals, reverse=True)[:months]
    return {
        "trends": [
            {
                "month": m,
                "total": float(totals[m]),
                "count": counts[m],
                "average": float(totals[m] / counts[m]),
            }
            for m in reversed(latest)
        ]
    }


def recent_receipts(context: FinancialContext, limit: int = 5) -> dict:
    return {
        "receipts": [
            {
                "id": str(r.id),
                "fileName": r.file_name,
                "uploadDate": r.uploaded_at.isoformat(),
                "hasTransaction": r.transaction_id is not None,
            }
            for r in context.receipts[:limit]
        ]
    }


def analyze_spending_pattern(
    context: FinancialContext,
    category: Optional[str] = None,
) -> dict:
    """
    Expense insights per category, optionally narrowed to categories
    containing `category`, with a comparison to the monthly expense target.
    """
    expenses = _filter(context.transactions, "expense")
    if category:
        needle = category.lower()
        expenses = [t for t in expenses if needle in t.category.lower()]

    total = sum((t.amount for t in expenses), ZERO)
    by_category: dict[str, list[Decimal]] = defaultdict(list)
    for t in expenses:
        by_category[t.category].append(t.amount)

    insights = [
        {
            "category": c,
            "total": float(sum(amounts, ZERO)),
            "average": float(sum(amounts, ZERO) / len(amounts)),
            "frequency": len(amounts),
            "maxAmount": float(max(amounts)),
            "minAmount": float(min(amounts)),
        }
        for c, amounts in by_category.items()
    ]
    insights.sort(key=lambda row: row["total"], reverse=True)

    profile = context.profile
    target = profile.monthly_expense if profile else None
    return {
        "totalSpending": float(total),
        "avgTransaction": float(total / len(expenses)) if expenses else 0.0,
        "transactionCount": len(expenses),
        "insights": insights,
        "budgetComparison": {
            "target": float(target),
            "actual": float(total),
            "difference": float(target - total),
            "isOverBudget": total > target,
        } if target else None,
    }


def analyze_budget_performance(context: FinancialContext) -> dict:
    """Actual income and spending against the profile's targets."""
    profile = context.profile
    if profile is None:
        return {"error": "No financial profile found. User should complete their profile first."}

    spending = sum((t.amount for t in _filter(context.transactions, "expense")), ZERO)
    income = sum((t.amount for t in _filter(context.transactions, "income")), ZERO)
    surplus = income - spending

    expense_target = profile.monthly_expense
    income_target = profile.monthly_income
    savings_goal = profile.savings_goal

    return {
        "profile": {
            "monthlyIncome": _money(income_target),
            "monthlyExpenseTarget": _money(expense_target),
            "savingsGoal": _money(savings_goal),
        },
        "actual": {
            "totalIncome": float(income),
            "totalSpending": float(spending),
            "actualSurplus": float(surplus),
        },
        "analysis": {
            "budgetVariance": float(expense_target - spending) if expense_target else None,
            "incomeGoalProgress": float(income / income_target * 100) if income_target else None,
            "savingsProgress": float(surplus / savings_goal * 100) if savings_goal else None,
        },
        "recommendations": {
            "shouldReduceSpending": bool(expense_target) and spending > expense_target,
            "savingsGapExists": bool(savings_goal) and surplus < savings_goal,
        },
    }


def run_grounding_tools(context: FinancialContext) -> dict:
    """Default run of every tool, keyed by tool name."""
    return {
        "viewTransactionSummary": transaction_summary(context),
        "getCategoryBreakdown": category_breakdown(context),
        "getMonthlyTrends": monthly_trends(context),
        "viewRecentReceipts": recent_receipts(context),
        "analyzeSpendingPattern": analyze_spending_pattern(context),
        "analyzeBudgetPerformance": analyze_budget_performance(context),
    }

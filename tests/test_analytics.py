"""Tests for the dashboard numbers, assistant grounding tools and admin totals."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pocketledger.analytics import (
    FinancialContext,
    admin_receipt_rows,
    admin_statistics,
    admin_transaction_rows,
    admin_user_rows,
    analyze_budget_performance,
    analyze_spending_pattern,
    category_breakdown,
    category_chart_data,
    dashboard_totals,
    generate_financial_summary,
    income_expense_trend,
    monthly_trends,
    receipt_stats,
    receipt_storage_stats,
    recent_receipts,
    run_grounding_tools,
    transaction_summary,
)
from pocketledger.analytics.summary import month_key
from pocketledger.models import (
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TransactionType,
)


INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE


def tx(slug, type_, amount, category, day):
    return Transaction(
        user_id="user-1",
        slug=slug,
        title=slug.title(),
        type=type_,
        amount=Decimal(amount),
        category=category,
        date=day,
    )


@pytest.fixture
def transactions():
    """Newest first, the order storage returns them in."""
    return [
        tx("salary", INCOME, "3000.00", "Business", date(2024, 3, 25)),
        tx("groceries", EXPENSE, "120.00", "Groceries", date(2024, 3, 20)),
        tx("dinner", EXPENSE, "80.00", "Food & Dining", date(2024, 3, 10)),
        tx("groceries-1", EXPENSE, "60.00", "Groceries", date(2024, 2, 15)),
        tx("freelance", INCOME, "500.00", "Business", date(2024, 2, 1)),
        tx("bus", EXPENSE, "40.00", "Transportation", date(2024, 1, 5)),
    ]


@pytest.fixture
def profile():
    return FinancialProfile(
        user_id="user-1",
        monthly_income=Decimal("4000"),
        monthly_expense=Decimal("250"),
        savings_goal=Decimal("1000"),
    )


class TestFinancialSummary:
    """The summary handed to the assistants."""

    def test_summary(self, transactions):
        summary = generate_financial_summary(transactions)

        assert summary.total_spending == Decimal("3800.00")
        assert summary.top_categories == ["Business", "Groceries", "Food & Dining"]
        assert [(m.month, m.total) for m in summary.monthly_trends] == [
            ("2024-03", Decimal("3200.00")),
            ("2024-02", Decimal("560.00")),
            ("2024-01", Decimal("40.00")),
        ]
        assert [t.slug for t in summary.recent_transactions] == [
            "salary", "groceries", "dinner", "groceries-1", "freelance",
        ]

    def test_empty_summary(self):
        summary = generate_financial_summary([])
        assert summary.total_spending == Decimal("0")
        assert summary.top_categories == []

    def test_month_key(self):
        assert month_key(date(2024, 1, 31)) == "2024-01"


class TestDashboard:
    """Overview page numbers."""

    def test_totals(self, transactions):
        totals = dashboard_totals(transactions)
        assert totals.total_income == Decimal("3500.00")
        assert totals.total_expenses == Decimal("300.00")
        assert totals.balance == Decimal("3200.00")
        assert totals.transaction_count == 6

    def test_category_chart_covers_last_three_months(self, transactions):
        rows = category_chart_data(transactions, today=date(2024, 3, 31))
        assert [(r.category, r.amount, r.count) for r in rows] == [
            ("Groceries", Decimal("180.00"), 2),
            ("Food & Dining", Decimal("80.00"), 1),
            ("Transportation", Decimal("40.00"), 1),
        ]

    def test_category_chart_window(self, transactions):
        rows = category_chart_data(transactions, months=1, today=date(2024, 3, 31))
        assert [r.category for r in rows] == ["Groceries", "Food & Dining"]

    def test_trend_includes_empty_months(self, transactions):
        points = income_expense_trend(transactions, months=4, today=date(2024, 3, 31))

        assert [p.month for p in points] == ["2023-12", "2024-01", "2024-02", "2024-03"]
        assert [p.label for p in points] == ["Dec", "Jan", "Feb", "Mar"]
        assert points[0].income == Decimal("0") and points[0].expenses == Decimal("0")
        assert points[2].income == Decimal("500.00")
        assert points[3].expenses == Decimal("200.00")


class TestGroundingTools:
    """Tools whose output is embedded in the assistants' context."""

    def test_transaction_summary(self, transactions):
        context = FinancialContext.build(transactions)
        result = transaction_summary(context, limit=2)

        assert [t["title"] for t in result["transactions"]] == ["Salary", "Groceries"]
        assert result["totalAmount"] == 3120.0
        assert result["categories"] == ["Business", "Groceries"]

    def test_transaction_summary_by_type(self, transactions):
        context = FinancialContext.build(transactions)
        assert transaction_summary(context, type="expense")["totalAmount"] == 300.0

    def test_category_breakdown(self, transactions):
        result = category_breakdown(FinancialContext.build(transactions))
        assert result["categories"][0] == {
            "category": "Groceries", "total": 180.0, "count": 2, "average": 90.0,
        }
        assert [c["category"] for c in result["categories"]] == [
            "Groceries", "Food & Dining", "Transportation",
        ]

    def test_monthly_trends_latest_months_oldest_first(self, transactions):
        result = monthly_trends(FinancialContext.build(transactions), months=2)
        assert result["trends"] == [
            {"month": "2024-02", "total": 60.0, "count": 1, "average": 60.0},
            {"month": "2024-03", "total": 200.0, "count": 2, "average": 100.0},
        ]

    def test_spending_pattern_with_budget(self, transactions, profile):
        result = analyze_spending_pattern(FinancialContext.build(transactions, profile=profile))

        assert result["totalSpending"] == 300.0
        assert result["avgTransaction"] == 75.0
        assert result["transactionCount"] == 4
        assert result["budgetComparison"] == {
            "target": 250.0, "actual": 300.0, "difference": -50.0, "isOverBudget": True,
        }

    def test_spending_pattern_category_filter(self, transactions):
        result = analyze_spending_pattern(FinancialContext.build(transactions), category="groc")

        assert result["budgetComparison"] is None
        assert result["insights"] == [{
            "category": "Groceries",
            "total": 180.0,
            "average": 90.0,
            "frequency": 2,
            "maxAmount": 120.0,
            "minAmount": 60.0,
        }]

    def test_budget_performance(self, transactions, profile):
        result = analyze_budget_performance(FinancialContext.build(transactions, profile=profile))

        assert result["actual"] == {
            "totalIncome": 3500.0, "totalSpending": 300.0, "actualSurplus": 3200.0,
        }
        assert result["analysis"] == {
            "budgetVariance": -50.0, "incomeGoalProgress": 87.5, "savingsProgress": 320.0,
        }
        assert result["recommendations"] == {
            "shouldReduceSpending": True, "savingsGapExists": False,
        }

    def test_budget_performance_needs_profile(self, transactions):
        result = analyze_budget_performance(FinancialContext.build(transactions))
        assert "error" in result

    def test_recent_receipts(self):
        receipt = ReceiptImage(user_id="user-1", file_name="a.jpg", file_path="p/a")
        result = recent_receipts(FinancialContext.build([], receipts=[receipt]))
        assert result["receipts"][0]["fileName"] == "a.jpg"
        assert result["receipts"][0]["hasTransaction"] is False

    def test_run_grounding_tools_names(self, transactions):
        result = run_grounding_tools(FinancialContext.build(transactions))
        assert set(result) == {
            "viewTransactionSummary",
            "getCategoryBreakdown",
            "getMonthlyTrends",
            "viewRecentReceipts",
            "analyzeSpendingPattern",
            "analyzeBudgetPerformance",
        }


class TestReceiptAndAdminStats:

    def test_receipt_stats_this_month(self, transactions):
        now = datetime(2024, 3, 28, tzinfo=timezone.utc)
        groceries, older = transactions[1], transactions[3]
        receipts = [
            ReceiptImage(
                user_id="user-1", transaction_id=groceries.id, file_name="a.jpg",
                file_path="p/a", uploaded_at=datetime(2024, 3, 20, tzinfo=timezone.utc),
            ),
            ReceiptImage(
                user_id="user-1", file_name="b.jpg",
                file_path="p/b", uploaded_at=datetime(2024, 3, 2, tzinfo=timezone.utc),
            ),
            ReceiptImage(
                user_id="user-1", transaction_id=older.id, file_name="c.jpg",
                file_path="p/c", uploaded_at=datetime(2024, 2, 15, tzinfo=timezone.utc),
            ),
        ]
        stats = receipt_stats(receipts, {t.id: t for t in transactions}, now=now)

        assert stats.total_receipts == 2
        assert stats.processed_receipts == 2
        assert stats.total_value == Decimal("120.00")

    def test_admin_statistics(self, transactions):
        now = datetime(2024, 3, 28, tzinfo=timezone.utc)
        profiles = [
            FinancialProfile(user_id="new", created_at=now - timedelta(days=2)),
            FinancialProfile(user_id="old", created_at=now - timedelta(days=30)),
        ]
        receipts = [ReceiptImage(user_id="new", file_name="a.jpg", file_path="p/a")]

        stats = admin_statistics(profiles, transactions, receipts, now=now)

        assert stats.total_users == 2
        assert stats.total_transactions == 6
        assert stats.total_receipts == 1
        assert stats.total_revenue == Decimal("3500.00")
        assert stats.avg_transaction_amount == Decimal("633.33")
        assert stats.recent_users == 1

    def test_admin_statistics_empty(self):
        stats = admin_statistics([], [], [])
        assert stats.avg_transaction_amount == Decimal("0")


class TestAdminOverviews:

    @pytest.fixture
    def profiles(self):
        now = datetime(2024, 3, 28, tzinfo=timezone.utc)
        return [
            FinancialProfile(
                user_id="user-1", email="sam@example.com", full_name="Sam Doe",
                created_at=now - timedelta(days=30),
            ),
            FinancialProfile(user_id="user-2", created_at=now - timedelta(days=2)),
        ]

    def test_user_rows(self, profiles, transactions):
        stray = tx("ghost", EXPENSE, "9.00", "Other", date(2024, 3, 1)).model_copy(
            update={"user_id": "deleted-user"}
        )

        rows = admin_user_rows(profiles, transactions + [stray])

        assert [r.profile.user_id for r in rows] == ["user-2", "user-1"]
        assert rows[0].transaction_count == 0
        assert rows[1].transaction_count == 6
        assert rows[1].total_income == Decimal("3500.00")
        assert rows[1].total_expenses == Decimal("300.00")

    def test_transaction_rows(self, profiles, transactions):
        groceries = transactions[1]
        receipts = [
            ReceiptImage(user_id="user-1", transaction_id=groceries.id, file_name="a.jpg", file_path="p/a"),
            ReceiptImage(user_id="user-1", transaction_id=groceries.id, file_name="b.jpg", file_path="p/b"),
        ]

        rows = admin_transaction_rows(transactions, profiles, receipts)

        assert len(rows) == 6
        by_slug = {r.transaction.slug: r for r in rows}
        assert by_slug["groceries"].receipt_count == 2
        assert by_slug["salary"].receipt_count == 0
        assert by_slug["salary"].owner_email == "sam@example.com"
        assert by_slug["salary"].owner_name == "Sam Doe"

    def test_receipt_rows(self, profiles, transactions):
        groceries = transactions[1]
        receipts = [
            ReceiptImage(
                user_id="user-1", transaction_id=groceries.id, file_name="old.jpg",
                file_path="p/old", uploaded_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
            ),
            ReceiptImage(
                user_id="user-2", file_name="new.jpg",
                file_path="p/new", uploaded_at=datetime(2024, 3, 20, tzinfo=timezone.utc),
            ),
        ]

        rows = admin_receipt_rows(receipts, transactions, profiles)

        assert [r.receipt.file_name for r in rows] == ["new.jpg", "old.jpg"]
        assert rows[0].transaction is None
        assert rows[0].owner_email is None
        assert rows[1].transaction.slug == "groceries"
        assert rows[1].owner_name == "Sam Doe"

    def test_receipt_storage(self):
        now = datetime(2024, 3, 28, tzinfo=timezone.utc)
        receipts = [
            ReceiptImage(
                user_id="user-1", file_name="a.jpg", file_path="p/a", file_size=2048,
                mime_type="image/jpeg", uploaded_at=now - timedelta(days=1),
            ),
            ReceiptImage(
                user_id="user-1", file_name="b.png", file_path="p/b", file_size=1024,
                mime_type="image/png", uploaded_at=now - timedelta(days=7),
            ),
            ReceiptImage(
                user_id="user-1", file_name="c.jpg", file_path="p/c",
                mime_type="image/jpeg", uploaded_at=now - timedelta(days=8),
            ),
            ReceiptImage(
                user_id="user-2", file_name="d.pdf", file_path="p/d", file_size=512,
                mime_type="application/pdf", uploaded_at=now - timedelta(days=20),
            ),
        ]

        stats = receipt_storage_stats(receipts, now=now)

        assert stats.total_receipts == 4
        assert stats.total_size == 3584
        assert stats.recent_receipts == 2
        assert stats.images == 3
        assert stats.pdfs == 1
        assert stats.mime_types == {"image/jpeg": 2, "image/png": 1, "application/pdf": 1}

    def test_receipt_storage_empty(self):
        stats = receipt_storage_stats([])
        assert stats.total_size == 0
        assert stats.mime_types == {}

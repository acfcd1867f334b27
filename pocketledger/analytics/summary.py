"""
Financial summaries for the dashboard, the assistants and the admin panel.

All functions are pure: they take already-loaded records and return
pydantic models, so the same numbers back the charts and the chat context.
Amounts stay Decimal until they are rendered.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pocketledger.models.finance import (
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TransactionType,
    utcnow,
)


ZERO = Decimal("0")


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def _shift_month(day: date, months: int) -> date:
    """First day of the month `months` away from `day`'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


# =============================================================================
# CHAT CONTEXT SUMMARY
# =============================================================================

class MonthlyTotal(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    total: Decimal


class FinancialSummary(BaseModel):
    """Compact view of a user's recent transactions for the assistants."""

    total_spending: Decimal = ZERO
    top_categories: list[str] = Field(default_factory=list)
    monthly_trends: list[MonthlyTotal] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)


def generate_financial_summary(transactions: list[Transaction]) -> FinancialSummary:
    """
    Summarise transactions (expected newest first).

    `total_spending` sums every amount regardless of type. Top categories
    are ranked by number of transactions, ties keep first-seen order.
    """
    total = sum((t.amount for t in transactions), ZERO)

    counts = Counter(t.category for t in transactions)
    top_categories = [category for category, _ in counts.most_common(3)]

    by_month: dict[str, Decimal] = {}
    for t in transactions:
        key = month_key(t.date)
        by_month[key] = by_month.get(key, ZERO) + t.amount

    return FinancialSummary(
        total_spending=total,
        top_categories=top_categories,
        monthly_trends=[MonthlyTotal(month=m, total=v) for m, v in by_month.items()],
        recent_transactions=transactions[:5],
    )


# =============================================================================
# DASHBOARD
# =============================================================================

class DashboardTotals(BaseModel):
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    transaction_count: int = 0

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expenses


def dashboard_totals(transactions: Iterable[Transaction]) -> DashboardTotals:
    income = expenses = ZERO
    count = 0
    for t in transactions:
        count += 1
        if t.type == TransactionType.INCOME:
            income += t.amount
        else:
            expenses += t.amount
    return DashboardTotals(total_income=income, total_expenses=expenses, transaction_count=count)


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal
    count: int


def category_chart_data(
    transactions: Iterable[Transaction],
    months: int = 3,
    today: Optional[date] = None,
) -> list[CategoryTotal]:
    """Expenses per category over the last `months` months, largest first."""
    today = today or date.today()
    since = _shift_month(today, -(months - 1))

    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Counter = Counter()
    for t in transactions:
        if t.type != TransactionType.EXPENSE or t.date < since:
            continue
        totals[t.category] += t.amount
        counts[t.category] += 1

    rows = [
        CategoryTotal(category=c, amount=totals[c], count=counts[c])
        for c in totals
    ]
    return sorted(rows, key=lambda r: r.amount, reverse=True)


class TrendPoint(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    label: str = Field(..., description="Short month name for the axis")
    income: Decimal = ZERO
    expenses: Decimal = ZERO


def income_expense_trend(
    transactions: Iterable[Transaction],
    months: int = 6,
    today: Optional[date] = None,
) -> list[TrendPoint]:
    """Income and expenses per month for the last `months` months, oldest first."""
    today = today or date.today()
    points = {}
    for offset in range(months - 1, -1, -1):
        first = _shift_month(today, -offset)
        points[month_key(first)] = TrendPoint(month=month_key(first), label=first.strftime("%b"))

    for t in transactions:
        point = points.get(month_key(t.date))
        if point is None:
            continue
        if t.type == TransactionType.INCOME:
            point.income += t.amount
        else:
            point.expenses += t.amount

    return list(points.values())


# =============================================================================
# RECEIPTS
# =============================================================================

class ReceiptStats(BaseModel):
    total_receipts: int = 0
    processed_receipts: int = 0
    total_value: Decimal = ZERO


def receipt_stats(
    receipts: Iterable[ReceiptImage],
    transactions_by_id: dict[UUID, Transaction],
    now: Optional[datetime] = None,
) -> ReceiptStats:
    """
    Receipts uploaded this calendar month and the value of the
    transactions they are attached to.

    Every stored receipt counts as processed.
    """
    now = now or utcnow()
    this_month = [
        r for r in receipts
        if r.uploaded_at.year == now.year and r.uploaded_at.month == now.month
    ]
    value = ZERO
    for r in this_month:
        transaction = transactions_by_id.get(r.transaction_id) if r.transaction_id else None
        if transaction is not None:
            value += abs(transaction.amount)
    return ReceiptStats(
        total_receipts=len(this_month),
        processed_receipts=len(this_month),
        total_value=value,
    )


# =============================================================================
# ADMIN
# =============================================================================

class AdminStatistics(BaseModel):
    total_users: int = 0
    total_transactions: int = 0
    total_receipts: int = 0
    total_revenue: Decimal = ZERO
    avg_transaction_amount: Decimal = ZERO
    recent_users: int = Field(default=0, description="Sign-ups in the last 7 days")


def admin_statistics(
    profiles: list[FinancialProfile],
    transactions: list[Transaction],
    receipts: list[ReceiptImage],
    now: Optional[datetime] = None,
) -> AdminStatistics:
    """Totals across every user. Revenue is the sum of all income."""
    now = now or utcnow()
    seven_days_ago = now - timedelta(days=7)

    revenue = sum((t.amount for t in transactions if t.is_income), ZERO)
    all_amounts = sum((t.amount for t in transactions), ZERO)
    average = (all_amounts / len(transactions)).quantize(Decimal("0.01")) if transactions else ZERO

    return AdminStatistics(
        total_users=len(profiles),
        total_transactions=len(transactions),
        total_receipts=len(receipts),
        total_revenue=revenue,
        avg_transaction_amount=average,
        recent_users=sum(1 for p in profiles if p.created_at >= seven_days_ago),
    )


class AdminUserRow(BaseModel):
    profile: FinancialProfile
    transaction_count: int = 0
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO


def admin_user_rows(
    profiles: Iterable[FinancialProfile],
    transactions: Iterable[Transaction],
) -> list[AdminUserRow]:
    """Every user with their transaction totals, newest sign-up first."""
    rows = {p.user_id: AdminUserRow(profile=p) for p in profiles}
    for t in transactions:
        row = rows.get(t.user_id)
        if row is None:
            continue
        row.transaction_count += 1
        if t.is_income:
            row.total_income += t.amount
        else:
            row.total_expenses += t.amount
    return sorted(rows.values(), key=lambda r: r.profile.created_at, reverse=True)


class AdminTransactionRow(BaseModel):
    transaction: Transaction
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    receipt_count: int = 0


def admin_transaction_rows(
    transactions: Iterable[Transaction],
    profiles: Iterable[FinancialProfile],
    receipts: Iterable[ReceiptImage],
) -> list[AdminTransactionRow]:
    """Every transaction with its owner and receipt count, newest first."""
    owners = {p.user_id: p for p in profiles}
    receipt_counts = Counter(r.transaction_id for r in receipts if r.transaction_id)

    rows = []
    for t in sorted(transactions, key=lambda t: t.created_at, reverse=True):
        owner = owners.get(t.user_id)
        rows.append(AdminTransactionRow(
            transaction=t,
            owner_email=owner.email if owner else None,
            owner_name=owner.full_name if owner else None,
            receipt_count=receipt_counts[t.id],
        ))
    return rows


class AdminReceiptRow(BaseModel):
    receipt: ReceiptImage
    transaction: Optional[Transaction] = None
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None


def admin_receipt_rows(
    receipts: Iterable[ReceiptImage],
    transactions: Iterable[Transaction],
    profiles: Iterable[FinancialProfile],
) -> list[AdminReceiptRow]:
    """Every receipt with its linked transaction and owner, newest upload first."""
    by_id = {t.id: t for t in transactions}
    owners = {p.user_id: p for p in profiles}

    rows = []
    for r in sorted(receipts, key=lambda r: r.uploaded_at, reverse=True):
        owner = owners.get(r.user_id)
        rows.append(AdminReceiptRow(
            receipt=r,
            transaction=by_id.get(r.transaction_id) if r.transaction_id else None,
            owner_email=owner.email if owner else None,
            owner_name=owner.full_name if owner else None,
        ))
    return rows


class ReceiptStorageStats(BaseModel):
    total_receipts: int = 0
    total_size: int = Field(default=0, description="Bytes, receipts without a size excluded")
    recent_receipts: int = Field(default=0, description="Uploads in the last 7 days")
    images: int = 0
    pdfs: int = 0
    mime_types: dict[str, int] = Field(default_factory=dict)


def receipt_storage_stats(
    receipts: Iterable[ReceiptImage],
    now: Optional[datetime] = None,
) -> ReceiptStorageStats:
    now = now or utcnow()
    seven_days_ago = now - timedelta(days=7)
    receipts = list(receipts)
    mime_types = Counter(r.mime_type for r in receipts if r.mime_type)

    return ReceiptStorageStats(
        total_receipts=len(receipts),
        total_size=sum(r.file_size or 0 for r in receipts),
        recent_receipts=sum(1 for r in receipts if r.uploaded_at >= seven_days_ago),
        images=sum(n for mime, n in mime_types.items() if mime.startswith("image/")),
        pdfs=mime_types.get("application/pdf", 0),
        mime_types=dict(mime_types.most_common()),
    )

"""Financial analytics: dashboard numbers, assistant grounding and admin totals."""

from pocketledger.analytics.summary import (
    AdminReceiptRow,
    AdminStatistics,
    AdminTransactionRow,
    AdminUserRow,
    CategoryTotal,
    DashboardTotals,
    FinancialSummary,
    MonthlyTotal,
    ReceiptStats,
    ReceiptStorageStats,
    TrendPoint,
    admin_receipt_rows,
    admin_statistics,
    admin_transaction_rows,
    admin_user_rows,
    category_chart_data,
    dashboard_totals,
    generate_financial_summary,
    income_expense_trend,
    receipt_stats,
    receipt_storage_stats,
)
from pocketledger.analytics.tools import (
    FinancialContext,
    analyze_budget_performance,
    analyze_spending_pattern,
    category_breakdown,
    monthly_trends,
    recent_receipts,
    run_grounding_tools,
    transaction_summary,
)

__all__ = [
    "AdminReceiptRow",
    "AdminStatistics",
    "AdminTransactionRow",
    "AdminUserRow",
    "CategoryTotal",
    "DashboardTotals",
    "FinancialContext",
    "FinancialSummary",
    "MonthlyTotal",
    "ReceiptStats",
    "ReceiptStorageStats",
    "TrendPoint",
    "admin_receipt_rows",
    "admin_statistics",
    "admin_transaction_rows",
    "admin_user_rows",
    "analyze_budget_performance",
    "analyze_spending_pattern",
    "category_breakdown",
    "category_chart_data",
    "dashboard_totals",
    "generate_financial_summary",
    "income_expense_trend",
    "monthly_trends",
    "receipt_stats",
    "receipt_storage_stats",
    "recent_receipts",
    "run_grounding_tools",
    "transaction_summary",
]

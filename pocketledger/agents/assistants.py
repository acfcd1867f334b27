"""
The financial assistants and the context they are given.

An assistant is data: an id, a name and a system prompt. The context
prompt describes the user's profile and transactions and is appended to
the system prompt on every request.
"""

import json
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from pocketledger.analytics.tools import FinancialContext, run_grounding_tools


class Assistant(BaseModel):
    id: str
    name: str
    description: str
    system_prompt: str


ASSISTANTS: dict[str, Assistant] = {
    "income": Assistant(
        id="income",
        name="Income Assistant",
        description="Expert guidance on managing and growing your income",
        system_prompt="""You are a financial income advisor. Your role is to:
- Analyze income patterns and suggest optimization strategies
- Provide actionable advice for income growth based on current income level
- Focus on career development and side income opportunities
- Use transaction history AND financial profile data to make personalized recommendations
- Compare actual income against monthly income targets
- Help users set realistic income goals based on their expenses and savings targets
- Consider the user's savings goals when suggesting income strategies

IMPORTANT: Always reference the user's financial profile (monthly income target, expenses, savings goal) when available. If profile data is missing, encourage the user to complete their financial profile for better personalized advice.

Only discuss income-related topics. Redirect expenditure questions to the Expenditure Assistant.""",
    ),
    "expenditure": Assistant(
        id="expenditure",
        name="Expenditure Assistant",
        description="Smart budgeting and spending control advisor",
        system_prompt="""You are a financial expenditure advisor. Your role is to:
- Analyze spending patterns and identify areas for optimization
- Provide practical budgeting advice based on income and expense targets
- Compare actual spending against monthly expense budgets
- Suggest ways to reduce unnecessary expenses while maintaining quality of life
- Use transaction history AND financial profile data to make personalized recommendations
- Help users align spending with their savings goals
- Provide budget variance analysis and actionable improvements

IMPORTANT: Always reference the user's financial profile (monthly income, expense targets, savings goal) when available. Compare actual spending against targets and provide specific recommendations. If profile data is missing, encourage the user to complete their financial profile for better personalized advice.

Only discuss expenditure-related topics. Redirect income questions to the Income Assistant.""",
    ),
}

NO_CONTEXT_PROMPT = (
    "No financial context available yet. Encourage the user to add "
    "transactions and complete their financial profile."
)


def get_assistant(assistant_id: str) -> Optional[Assistant]:
    return ASSISTANTS.get(assistant_id)


def _dollars(value: Optional[Decimal]) -> str:
    return f"${value}" if value else "Not specified"


def build_context_prompt(context: Optional[FinancialContext]) -> str:
    """Render the user's profile, transaction data and key insights."""
    if context is None:
        return NO_CONTEXT_PROMPT

    profile = context.profile
    summary = context.summary
    income = profile.monthly_income if profile else None
    expense = profile.monthly_expense if profile else None

    if expense and summary.total_spending:
        budget_line = (
            f"- Budget vs Actual: Target ${expense}/month, "
            f"Actual spending ${summary.total_spending} total"
        )
    else:
        budget_line = "- No budget comparison available (user should set monthly expense target)"

    if income and expense:
        surplus_line = f"- Expected monthly surplus: ${income - expense}"
    else:
        surplus_line = "- Cannot calculate surplus (income/expense targets needed)"

    lines = [
        "Here's the user's financial context:",
        "",
        "PROFILE INFORMATION:",
        f"- Name: {(profile.full_name if profile else None) or 'User'}",
        f"- Email: {(profile.email if profile else None) or 'Not specified'}",
        f"- Monthly Income: {_dollars(income)}",
        f"- Monthly Expense Target: {_dollars(expense)}",
        f"- Savings Goal: {_dollars(profile.savings_goal if profile else None)}",
        "",
        "TRANSACTION DATA:",
        f"- Total actual spending: ${summary.total_spending}",
        f"- Top spending categories: {', '.join(summary.top_categories) or 'None'}",
        f"- Recent transactions: {len(summary.recent_transactions)} available",
        f"- Monthly spending trends: {len(summary.monthly_trends)} months of data",
        "",
        "KEY INSIGHTS:",
        budget_line,
        surplus_line,
        "",
        "ANALYSIS (computed from the user's stored data, quote these figures):",
        json.dumps(run_grounding_tools(context), indent=2),
        "",
        "Use this information to provide personalized financial advice. If profile "
        "data is missing, encourage the user to complete their financial profile "
        "for better recommendations.",
    ]
    return "\n".join(lines)

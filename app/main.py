"""
Streamlit Frontend for PocketLedger

The dashboard users open every day: transactions, receipts, the two
financial assistants and their account.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything from a receipt is saved
3. Back buttons that return to the page the user came from
4. Clear error messages in simple language

Pages are addressed by dashboard paths ("/dashboard/transactions/<slug>")
kept in session state, so the navigation tracker sees the same routes it
would in a browser.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st
from pydantic import ValidationError

from pocketledger.agents import ASSISTANTS, AssistantUnavailableError
from pocketledger.audit import configure_logging
from pocketledger.config import validate_all_settings
from pocketledger.formatting import (
    format_chat_timestamp,
    format_file_size,
    format_full_timestamp,
    format_money,
)
from pocketledger.models import (
    TRANSACTION_CATEGORIES,
    TransactionInput,
    TransactionType,
    TransactionUpdate,
    parse_financial_amount,
)
from pocketledger.navigation import NavigationHistory, resolve_back_button
from pocketledger.orchestrator import (
    ChatFlow,
    InvalidChatRequestError,
    RateLimitExceededError,
    UnknownAssistantError,
    create_app_components,
)
from pocketledger.services import ReceiptImageError, StorageError, UnsupportedImageError
from pocketledger.validation.chat import MAX_CONVERSATION_MESSAGES


configure_logging()

st.set_page_config(
    page_title="PocketLedger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

ROUTE_KEY = "route"
ROUTE_STACK_KEY = "route_stack"
HOME = "/dashboard"

MAIN_PAGES = [
    ("📊 Overview", "/dashboard"),
    ("💳 Transactions", "/dashboard/transactions"),
    ("🧾 Receipts", "/dashboard/receipts"),
    ("💬 Chat", "/dashboard/chat"),
    ("👤 Account", "/dashboard/account"),
    ("🛡️ Admin", "/dashboard/admin"),
    ("⚙️ Settings", "/dashboard/settings"),
]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


class SessionRouter:
    """Navigation inside one Streamlit session, with a history stack."""

    def __init__(self, state):
        self._state = state
        self._state.setdefault(ROUTE_KEY, HOME)
        self._state.setdefault(ROUTE_STACK_KEY, [])

    @property
    def current(self) -> str:
        return self._state[ROUTE_KEY]

    def push(self, path: str) -> None:
        if path != self.current:
            self._state[ROUTE_STACK_KEY].append(self.current)
            self._state[ROUTE_KEY] = path

    def back(self) -> None:
        stack = self._state[ROUTE_STACK_KEY]
        self._state[ROUTE_KEY] = stack.pop() if stack else HOME


def navigate(router: SessionRouter, path: str):
    router.push(path)
    st.rerun()


def back_button(history: NavigationHistory, current_path: str):
    button = resolve_back_button(history, current_path)
    if st.button(f"← {button.text}"):
        history.follow(button)
        st.rerun()


def main():
    """Main application entry point."""
    components = get_components()
    router = SessionRouter(st.session_state)
    history = NavigationHistory(st.session_state, router)

    st.sidebar.title("💰 PocketLedger")
    user_id = st.sidebar.text_input(
        "Signed in as",
        value=st.session_state.get("user_id", ""),
        placeholder="you@example.com",
    ).strip().lower()
    st.session_state["user_id"] = user_id
    st.sidebar.markdown("---")

    for label, path in MAIN_PAGES:
        if st.sidebar.button(label, use_container_width=True):
            navigate(router, path)

    if not user_id:
        st.title("💰 PocketLedger")
        st.info("Enter your email in the sidebar to get started.")
        return

    path = router.current
    history.on_route_change(path)
    parts = path.strip("/").split("/")

    if path in ("/dashboard", "/dashboard/overview"):
        render_overview_page(components, user_id)
    elif path == "/dashboard/transactions":
        render_transactions_page(components, router, history, user_id)
    elif path == "/dashboard/transactions/new":
        render_transaction_form(components, router, history, user_id, slug=None)
    elif len(parts) == 4 and parts[1] == "transactions" and parts[3] == "edit":
        render_transaction_form(components, router, history, user_id, slug=parts[2])
    elif len(parts) == 3 and parts[1] == "transactions":
        render_transaction_detail(components, router, history, user_id, slug=parts[2])
    elif path == "/dashboard/receipts":
        render_receipts_page(components, router, history, user_id)
    elif path == "/dashboard/chat":
        render_chat_page(components.chat, user_id)
    elif path == "/dashboard/account":
        render_account_page(components, user_id)
    elif path == "/dashboard/admin":
        render_admin_page(components, user_id)
    elif path == "/dashboard/settings":
        render_settings_page()
    else:
        st.error("Page not found")
        back_button(history, path)


# =============================================================================
# OVERVIEW
# =============================================================================

def render_overview_page(components, user_id: str):
    st.title("📊 Overview")
    data = run_async(components.transactions.dashboard(user_id))

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", format_money(data.totals.total_income))
    col2.metric("Expenses", format_money(data.totals.total_expenses))
    col3.metric("Balance", format_money(data.totals.balance))
    col4.metric("Transactions", data.totals.transaction_count)

    left, right = st.columns(2)
    with left:
        st.subheader("Spending by category (3 months)")
        if data.categories:
            st.bar_chart(
                {
                    "category": [c.category for c in data.categories],
                    "amount": [float(c.amount) for c in data.categories],
                },
                x="category",
                y="amount",
            )
        else:
            st.caption("No expenses yet.")
    with right:
        st.subheader("Income vs expenses (6 months)")
        st.line_chart(
            {
                "month": [p.month for p in data.trend],
                "income": [float(p.income) for p in data.trend],
                "expenses": [float(p.expenses) for p in data.trend],
            },
            x="month",
            y=["income", "expenses"],
        )

    st.subheader("Recent transactions")
    for transaction in data.recent:
        sign = "+" if transaction.is_income else "-"
        st.markdown(
            f"**{transaction.title}** · {transaction.category} · "
            f"{transaction.date:%b %d, %Y} · {sign}{format_money(transaction.amount)}"
        )


# =============================================================================
# TRANSACTIONS
# =============================================================================

def render_transactions_page(components, router, history, user_id: str):
    st.title("💳 Transactions")

    if st.button("➕ New Transaction", type="primary"):
        history.set_navigation_source("/dashboard/transactions")
        navigate(router, "/dashboard/transactions/new")

    col1, col2 = st.columns(2)
    with col1:
        type_filter = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda x: "All" if x is None else x.value.title(),
        )
    with col2:
        category_filter = st.selectbox(
            "Category",
            options=[None] + list(TRANSACTION_CATEGORIES),
            format_func=lambda x: "All Categories" if x is None else x,
        )

    transactions = run_async(components.transactions.list_transactions(
        user_id, type=type_filter, category=category_filter
    ))
    if not transactions:
        st.info("No transactions yet. Add one, or upload a receipt.")
        return

    for transaction in transactions:
        col1, col2, col3 = st.columns([4, 2, 1])
        col1.markdown(f"**{transaction.title}**  \n{transaction.category} · {transaction.date:%b %d, %Y}")
        sign = "+" if transaction.is_income else "-"
        col2.markdown(f"{sign}{format_money(transaction.amount)}")
        if col3.button("Open", key=f"open-{transaction.id}"):
            history.set_navigation_source("/dashboard/transactions")
            navigate(router, f"/dashboard/transactions/{transaction.slug}")


def render_transaction_detail(components, router, history, user_id: str, slug: str):
    path = f"/dashboard/transactions/{slug}"
    back_button(history, path)

    transaction = run_async(components.transactions.get(user_id, slug))
    if transaction is None:
        st.error("Transaction not found")
        return

    st.title(transaction.title)
    sign = "+" if transaction.is_income else "-"
    st.markdown(f"### {sign}{format_money(transaction.amount)}")
    st.markdown(f"**Type:** {transaction.type.value.title()}")
    st.markdown(f"**Category:** {transaction.category}")
    st.markdown(f"**Date:** {transaction.date:%B %d, %Y}")
    if transaction.notes:
        st.markdown(f"**Notes:** {transaction.notes}")
    st.caption(f"Created {format_full_timestamp(transaction.created_at)}")

    st.subheader("🧾 Receipts")
    receipts = run_async(components.receipts.list_for_transaction(user_id, transaction.id))
    for receipt in receipts:
        col1, col2 = st.columns([4, 1])
        if receipt.url:
            col1.image(receipt.url, width=300, caption=receipt.file_name)
        if col2.button("Delete", key=f"del-receipt-{receipt.id}"):
            run_async(components.receipts.delete_receipt(user_id, receipt.id))
            st.rerun()

    uploaded = st.file_uploader("Attach a receipt", type=["jpg", "jpeg", "png", "webp"])
    if uploaded and st.button("📎 Attach"):
        try:
            run_async(components.receipts.attach_to_transaction(
                user_id, slug, uploaded.name, uploaded.read(), uploaded.type
            ))
            st.rerun()
        except RateLimitExceededError as e:
            st.error(f"Too many uploads. Try again in {e.result.retry_after} seconds.")
        except ReceiptImageError as e:
            st.error(str(e))

    col1, col2 = st.columns(2)
    if col1.button("✏️ Edit"):
        navigate(router, f"{path}/edit")
    if col2.button("🗑️ Delete transaction"):
        run_async(components.transactions.delete(user_id, slug))
        history.go_back()
        st.rerun()


def render_transaction_form(components, router, history, user_id: str, slug):
    path = f"/dashboard/transactions/{slug}/edit" if slug else "/dashboard/transactions/new"
    back_button(history, path)

    existing = run_async(components.transactions.get(user_id, slug)) if slug else None
    if slug and existing is None:
        st.error("Transaction not found")
        return

    st.title("✏️ Edit Transaction" if existing else "➕ New Transaction")

    with st.form("transaction_form"):
        title = st.text_input("Title *", value=existing.title if existing else "")
        type_ = st.radio(
            "Type *",
            options=list(TransactionType),
            index=list(TransactionType).index(existing.type) if existing else 1,
            format_func=lambda x: x.value.title(),
            horizontal=True,
        )
        amount = st.number_input(
            "Amount *",
            value=float(existing.amount) if existing else 0.0,
            min_value=0.0,
            step=0.01,
            format="%.2f",
        )
        categories = list(TRANSACTION_CATEGORIES)
        category = st.selectbox(
            "Category *",
            options=categories,
            index=categories.index(existing.category) if existing and existing.category in categories else 0,
        )
        when = st.date_input("Date *", value=existing.date if existing else date.today())
        notes = st.text_area("Notes", value=(existing.notes or "") if existing else "")
        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return

    fields = {
        "title": title,
        "type": type_,
        "amount": Decimal(str(amount)).quantize(Decimal("0.01")),
        "category": category,
        "date": when,
        "notes": notes or None,
    }
    try:
        if existing:
            saved = run_async(components.transactions.update(
                user_id, slug, TransactionUpdate(**fields)
            ))
        else:
            saved = run_async(components.transactions.create(
                user_id, TransactionInput(**fields)
            ))
    except ValidationError as e:
        for error in e.errors():
            st.error(f"{error['loc'][-1]}: {error['msg']}")
        return
    except StorageError as e:
        st.error(f"Failed to save: {e}")
        return

    navigate(router, f"/dashboard/transactions/{saved.slug}")


# =============================================================================
# RECEIPTS
# =============================================================================

def render_receipts_page(components, router, history, user_id: str):
    st.title("🧾 Receipts")
    st.markdown("Upload a photo of a receipt. You review every detail before it is saved.")

    stats = run_async(components.receipts.monthly_stats(user_id))
    col1, col2 = st.columns(2)
    col1.metric("Receipts this month", stats.total_receipts)
    col2.metric("Value this month", format_money(stats.total_value))

    review = st.session_state.get("receipt_review")

    if review is None:
        uploaded = st.file_uploader(
            "Choose a receipt photo",
            type=["jpg", "jpeg", "png", "webp"],
            help="Take a clear, well-lit photo",
        )
        if uploaded and st.button("🔍 Read Receipt", type="primary"):
            with st.spinner("Reading your receipt... Please wait."):
                try:
                    review = run_async(components.receipts.upload_and_extract(
                        user_id, uploaded.name, uploaded.read(), uploaded.type
                    ))
                except RateLimitExceededError as e:
                    st.error(f"Too many uploads. Try again in {e.result.retry_after} seconds.")
                    return
                except UnsupportedImageError as e:
                    st.error(str(e))
                    return
                except Exception as e:
                    st.error(f"Error processing receipt: {e}")
                    return
            if not review.can_proceed:
                st.warning(review.message)
                if review.receipt:
                    run_async(components.receipts.discard(user_id, review.receipt))
                return
            st.session_state["receipt_review"] = review
            st.rerun()
    else:
        render_receipt_review(components, router, history, user_id, review)

    st.markdown("---")
    st.subheader("Your receipts")
    for receipt in run_async(components.receipts.list_for_user(user_id)):
        col1, col2 = st.columns([4, 1])
        col1.markdown(
            f"**{receipt.file_name}** · uploaded {format_chat_timestamp(receipt.uploaded_at)}"
        )
        if receipt.transaction_id and col2.button("Open", key=f"open-r-{receipt.id}"):
            transaction = run_async(
                components.transactions.storage.get_transaction(receipt.transaction_id)
            )
            if transaction:
                history.set_navigation_source("/dashboard/receipts")
                navigate(router, f"/dashboard/transactions/{transaction.slug}")


def render_receipt_review(components, router, history, user_id: str, review):
    extracted = review.extracted
    proposed = extracted.to_transaction_input()

    st.subheader("📋 Review Receipt")
    st.info(review.message)
    if review.receipt and review.receipt.url:
        with st.expander("📷 View Receipt"):
            st.image(review.receipt.url, width=400)
    st.markdown(f"**Confidence:** {extracted.confidence_score:.0%}")

    categories = list(TRANSACTION_CATEGORIES)
    with st.form("receipt_confirm"):
        title = st.text_input("Title *", value=proposed.title)
        amount = st.number_input(
            "Amount *", value=float(proposed.amount), min_value=0.0, step=0.01, format="%.2f"
        )
        category = st.selectbox(
            "Category *",
            options=categories,
            index=categories.index(proposed.category) if proposed.category in categories else len(categories) - 1,
        )
        when = st.date_input("Date *", value=proposed.date)
        notes = st.text_area("Notes")
        col1, col2 = st.columns(2)
        confirmed = col1.form_submit_button("✅ Confirm and Save", type="primary")
        rejected = col2.form_submit_button("❌ Discard")

    if rejected:
        run_async(components.receipts.discard(user_id, review.receipt))
        st.session_state["receipt_review"] = None
        st.rerun()

    if confirmed:
        try:
            transaction = run_async(components.receipts.confirm(
                user_id,
                review.receipt,
                TransactionInput(
                    title=title,
                    type=TransactionType.EXPENSE,
                    amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                    category=category,
                    date=when,
                    notes=notes or None,
                ),
                correlation_id=review.correlation_id,
            ))
        except ValidationError as e:
            for error in e.errors():
                st.error(f"{error['loc'][-1]}: {error['msg']}")
            return
        st.session_state["receipt_review"] = None
        history.set_navigation_source("/dashboard/receipts")
        navigate(router, f"/dashboard/transactions/{transaction.slug}")


# =============================================================================
# CHAT
# =============================================================================

def render_chat_page(chat_flow: ChatFlow, user_id: str):
    st.title("💬 Financial Assistants")

    assistant_id = st.radio(
        "Assistant",
        options=list(ASSISTANTS),
        format_func=lambda a: ASSISTANTS[a].name,
        horizontal=True,
    )
    assistant = ASSISTANTS[assistant_id]
    st.caption(assistant.description)

    messages = run_async(chat_flow.history(user_id, assistant_id))

    col1, col2 = st.columns(2)
    if col1.button("🗑️ Clear history", disabled=not messages):
        run_async(chat_flow.clear_history(user_id, assistant_id))
        st.rerun()
    export = run_async(chat_flow.export_history(user_id, assistant_id))
    if export:
        col2.download_button("⬇️ Export", data=export.content, file_name=export.filename)

    for message in messages:
        with st.chat_message(message.role.value):
            st.markdown(message.content)
            st.caption(format_chat_timestamp(message.created_at))

    prompt = st.chat_input(f"Ask the {assistant.name}...")
    if not prompt:
        return

    conversation = [m.to_prompt_dict() for m in messages][-(MAX_CONVERSATION_MESSAGES - 1):]
    conversation.append({"role": "user", "content": prompt})

    with st.spinner("Thinking..."):
        try:
            run_async(chat_flow.send(user_id, assistant_id, conversation))
        except RateLimitExceededError as e:
            st.error(
                "You've sent a lot of messages. "
                f"Please wait {e.result.retry_after} seconds before sending more."
            )
            return
        except InvalidChatRequestError as e:
            st.error(e.reason)
            return
        except (UnknownAssistantError, AssistantUnavailableError):
            st.error("The assistant couldn't answer right now. Please try again.")
            return
    st.rerun()


# =============================================================================
# ACCOUNT AND ADMIN
# =============================================================================

def render_account_page(components, user_id: str):
    st.title("👤 Account")
    profile = run_async(components.account.get_profile(user_id))

    with st.form("profile_form"):
        full_name = st.text_input("Full name", value=(profile.full_name or "") if profile else "")
        st.markdown("### Financial information")
        income = st.text_input(
            "Monthly income",
            value=str(profile.monthly_income or "") if profile else "",
        )
        expense = st.text_input(
            "Monthly expense target",
            value=str(profile.monthly_expense or "") if profile else "",
        )
        savings = st.text_input(
            "Savings goal",
            value=str(profile.savings_goal or "") if profile else "",
        )
        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return

    try:
        run_async(components.account.update_profile(
            user_id,
            email=user_id,
            full_name=full_name.strip() or None,
            monthly_income=parse_financial_amount(income),
            monthly_expense=parse_financial_amount(expense),
            savings_goal=parse_financial_amount(savings),
        ))
        st.success("Profile saved")
    except ValidationError as e:
        for error in e.errors():
            st.error(error["msg"])


def render_admin_page(components, user_id: str):
    st.title("🛡️ Admin")
    try:
        stats = run_async(components.account.admin_statistics(user_id))
    except PermissionError:
        st.error("You need admin access to view this page.")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Users", stats.total_users, delta=f"{stats.recent_users} this week")
    col2.metric("Transactions", stats.total_transactions)
    col3.metric("Receipts", stats.total_receipts)
    col1.metric("Revenue", format_money(stats.total_revenue))
    col2.metric("Average transaction", format_money(stats.avg_transaction_amount))

    users_tab, transactions_tab, receipts_tab = st.tabs(["Users", "Transactions", "Receipts"])

    with users_tab:
        rows = run_async(components.account.admin_users(user_id))
        st.dataframe(
            [
                {
                    "Email": r.profile.email or "",
                    "Name": r.profile.full_name or "",
                    "Role": r.profile.role.value,
                    "Joined": f"{r.profile.created_at:%b %d, %Y}",
                    "Transactions": r.transaction_count,
                    "Income": format_money(r.total_income),
                    "Expenses": format_money(r.total_expenses),
                }
                for r in rows
            ],
            use_container_width=True,
            hide_index=True,
        )

    with transactions_tab:
        rows = run_async(components.account.admin_transactions(user_id))
        st.dataframe(
            [
                {
                    "Title": r.transaction.title,
                    "Owner": r.owner_email or r.transaction.user_id,
                    "Type": r.transaction.type.value,
                    "Amount": format_money(r.transaction.amount),
                    "Category": r.transaction.category,
                    "Date": f"{r.transaction.date:%b %d, %Y}",
                    "Receipts": r.receipt_count,
                }
                for r in rows
            ],
            use_container_width=True,
            hide_index=True,
        )

    with receipts_tab:
        storage = run_async(components.account.admin_receipt_storage(user_id))
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Total size", format_file_size(storage.total_size))
        col2.metric("Last 7 days", storage.recent_receipts)
        col3.metric("Images", storage.images)
        col4.metric("PDFs", storage.pdfs)

        rows = run_async(components.account.admin_receipts(user_id))
        st.dataframe(
            [
                {
                    "File": r.receipt.file_name,
                    "Owner": r.owner_email or r.receipt.user_id,
                    "Size": format_file_size(r.receipt.file_size),
                    "Type": r.receipt.mime_type or "",
                    "Transaction": r.transaction.title if r.transaction else "Unlinked",
                    "Uploaded": f"{r.receipt.uploaded_at:%b %d, %Y}",
                }
                for r in rows
            ],
            use_container_width=True,
            hide_index=True,
        )


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Cloudinary (Receipt Images)", "cloudinary"),
        ("Mindee (Receipt OCR)", "mindee"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (Assistants)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()

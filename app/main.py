"""
Streamlit Frontend for the Personal Finance Tracker

This is the interface for day-to-day money tracking: wallets,
transactions, budgets, reports, goals and loans, assets, receipt
scanning, questions about your own spending and AI recommendations.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation at every step
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The receipt page enforces the human-in-the-loop principle:
- User sees what was extracted
- User picks the wallet and category, and may edit anything
- Nothing is saved without an explicit "Save" action
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import streamlit as st

from finance_tracker.agents import RecommendationError
from finance_tracker.analytics import format_currency, month_key
from finance_tracker.audit import configure_logging, create_correlation_id
from finance_tracker.config import get_settings, validate_all_settings
from finance_tracker.models.assets import AssetCategory, AssetCondition
from finance_tracker.models.assistant import ChatMessageType, Impact
from finance_tracker.models.finance import (
    CategoryType,
    TransactionFilter,
    TransactionType,
    WalletType,
)
from finance_tracker.models.goals import (
    GoalLoanCategory,
    GoalLoanStatus,
    GoalLoanType,
    Priority,
)
from finance_tracker.models.reports import InsightType, ReportPeriod
from finance_tracker.orchestrator import AppComponents, create_app_components
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.receipt import InvalidReceiptImageError, ReceiptAnalysisError


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


PERIOD_LABELS = {
    ReportPeriod.MONTH: "This Month",
    ReportPeriod.THREE_MONTHS: "Last 3 Months",
    ReportPeriod.SIX_MONTHS: "Last 6 Months",
    ReportPeriod.YEAR: "Last Year",
}

INSIGHT_BOXES = {
    InsightType.POSITIVE: "success-box",
    InsightType.WARNING: "warning-box",
    InsightType.INFO: "info-box",
}

PAGES = [
    "🏠 Dashboard",
    "💸 Transactions",
    "🏦 Wallets & Banks",
    "🏷️ Categories",
    "📅 Monthly Budgets",
    "📊 Reports & Analytics",
    "🎯 Goals & Loans",
    "💎 Assets",
    "🧾 Scan Receipt",
    "🤖 Ask AI",
    "💡 AI Recommendations",
    "⚙️ Settings",
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
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    configure_logging(debug=get_settings().app.debug_mode)
    # Without a configured USER_ID the data belongs to this server process only
    user_id = get_settings().app.user_id or uuid4()
    try:
        return create_app_components(user_id=user_id, use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(user_id=user_id, use_storage=False)


def money(amount) -> str:
    return format_currency(Decimal(str(amount)), get_settings().app.currency_symbol)


def label(value) -> str:
    """Enum value -> display text."""
    return value.value.replace("_", " ").title()


def main():
    """Main application entry point."""
    components = get_components()

    # Sidebar navigation
    st.sidebar.title("💰 Finance Tracker")
    st.sidebar.markdown("---")

    page = st.sidebar.radio("Navigate to:", PAGES, index=0)

    st.sidebar.markdown("---")
    if not components.storage_connected:
        st.sidebar.warning("Google Sheets is not connected. Data is kept in memory only.")
    st.sidebar.markdown(
        """
        **Getting started:**
        1. Add a wallet or bank account
        2. Create the default categories
        3. Record transactions or scan a receipt

        **Ask questions like:**
        - "How much did I spend on food last month?"
        - "What was my income this year?"
        """
    )

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard_page(components)
    elif page == "💸 Transactions":
        render_transactions_page(components)
    elif page == "🏦 Wallets & Banks":
        render_wallets_page(components)
    elif page == "🏷️ Categories":
        render_categories_page(components)
    elif page == "📅 Monthly Budgets":
        render_budgets_page(components)
    elif page == "📊 Reports & Analytics":
        render_reports_page(components)
    elif page == "🎯 Goals & Loans":
        render_goals_page(components)
    elif page == "💎 Assets":
        render_assets_page(components)
    elif page == "🧾 Scan Receipt":
        render_receipt_page(components)
    elif page == "🤖 Ask AI":
        render_query_page(components)
    elif page == "💡 AI Recommendations":
        render_recommendations_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_dashboard_page(components: AppComponents):
    """Render the dashboard."""
    st.title("🏠 Dashboard")

    try:
        stats = run_async(components.dashboard.get_dashboard_stats())
    except Exception as e:
        st.error(f"Could not load the dashboard: {str(e)}")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Balance", money(stats.total_balance))
    col2.metric("Income This Month", money(stats.monthly_income))
    col3.metric("Expenses This Month", money(stats.monthly_expenses))
    col4.metric("Savings Rate", f"{stats.savings_rate:.1f}%")

    st.caption(f"{stats.total_transactions} transactions recorded in total")
    st.markdown("---")

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Monthly Trend")
        if stats.monthly_trend:
            st.bar_chart(
                [
                    {"Month": p.label, "Income": float(p.income), "Expense": float(p.expense)}
                    for p in stats.monthly_trend
                ],
                x="Month",
                y=["Income", "Expense"],
            )
        else:
            st.info("No transactions in the last few months yet.")

    with col2:
        st.subheader("Top Spending Categories")
        if stats.top_categories:
            for category in stats.top_categories:
                st.markdown(
                    f"<span style='color:{category.color}'>●</span> "
                    f"**{category.name}**: {money(category.amount)} ({category.percentage:.1f}%)",
                    unsafe_allow_html=True,
                )
        else:
            st.info("No expenses this month.")

    st.markdown("---")
    st.subheader("Recent Transactions")
    if stats.recent_transactions:
        st.dataframe(
            [
                {
                    "Date": t.date,
                    "Description": t.description,
                    "Category": t.category_name,
                    "Wallet": t.wallet_name,
                    "Type": label(t.type),
                    "Amount": money(t.amount),
                }
                for t in stats.recent_transactions
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No transactions yet. Record one on the Transactions page.")

    overview = stats.budget_overview
    if overview.total_budget > 0:
        st.markdown("---")
        st.subheader("Budgets This Month")
        col1, col2, col3 = st.columns(3)
        col1.metric("Budgeted", money(overview.total_budget))
        col2.metric("Spent", money(overview.total_spent))
        col3.metric("Over Budget", overview.over_budget_count)


def render_transactions_page(components: AppComponents):
    """Render the transactions page: filters, list, add, edit and delete."""
    st.title("💸 Transactions")

    wallets = run_async(components.wallets.get_wallets())
    categories = run_async(components.categories.get_categories())
    wallet_names = {w.id: w.name for w in wallets}
    category_names = {c.id: c.name for c in categories}

    # Filters
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        type_filter = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda x: "All Types" if x is None else label(x),
        )
    with col2:
        wallet_filter = st.selectbox(
            "Wallet",
            options=[None] + [w.id for w in wallets],
            format_func=lambda x: "All Wallets" if x is None else wallet_names[x],
        )
    with col3:
        category_filter = st.selectbox(
            "Category",
            options=[None] + [c.id for c in categories],
            format_func=lambda x: "All Categories" if x is None else category_names[x],
        )
    with col4:
        date_range = st.date_input("Date Range", value=[])

    filters = TransactionFilter(
        type=type_filter,
        wallet_id=wallet_filter,
        category_id=category_filter,
        date_from=date_range[0] if len(date_range) > 0 else None,
        date_to=date_range[1] if len(date_range) > 1 else None,
    )
    transactions = run_async(components.transactions.get_transactions_filtered(filters))

    st.markdown("---")
    if transactions:
        st.dataframe(
            [
                {
                    "Date": t.date,
                    "Description": t.description,
                    "Category": t.category.name if t.category else "Unknown",
                    "Wallet": t.wallet.name if t.wallet else "Unknown",
                    "Type": label(t.type),
                    "Amount": money(t.amount),
                }
                for t in transactions
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No transactions match these filters.")

    if not wallets:
        st.warning("Add a wallet on the Wallets & Banks page before recording transactions.")
        return

    st.markdown("---")
    tab_add, tab_edit = st.tabs(["➕ Add Transaction", "✏️ Edit / Delete"])

    with tab_add:
        transaction_type = st.radio(
            "Type",
            options=list(TransactionType),
            format_func=label,
            horizontal=True,
            key="new_transaction_type",
        )
        matching = [c for c in categories if c.type.value == transaction_type.value]
        with st.form("add_transaction", clear_on_submit=True):
            wallet_id = st.selectbox(
                "Wallet *", options=[w.id for w in wallets], format_func=wallet_names.get
            )
            category_id = st.selectbox(
                "Category *", options=[c.id for c in matching], format_func=category_names.get
            )
            amount = st.number_input("Amount *", min_value=0.0, step=1000.0, format="%.2f")
            description = st.text_input("Description *")
            transaction_date = st.date_input("Date *", value=date.today())

            if st.form_submit_button("💾 Save Transaction", type="primary"):
                if category_id is None:
                    st.error("Please create a category of this type first")
                elif amount <= 0:
                    st.error("Please enter a valid amount")
                elif not description:
                    st.error("Please enter a description")
                else:
                    try:
                        run_async(components.transactions.create_transaction(
                            wallet_id=wallet_id,
                            category_id=category_id,
                            amount=Decimal(str(amount)),
                            transaction_type=transaction_type,
                            description=description,
                            transaction_date=transaction_date,
                        ))
                        st.success("Transaction saved")
                        st.rerun()
                    except Exception as e:
                        st.error(f"Failed to save: {str(e)}")

    with tab_edit:
        if not transactions:
            st.info("Nothing to edit.")
            return

        by_id = {t.id: t for t in transactions}
        selected_id = st.selectbox(
            "Transaction",
            options=list(by_id),
            format_func=lambda x: (
                f"{by_id[x].date} · {by_id[x].description} · {money(by_id[x].amount)}"
            ),
        )
        selected = by_id[selected_id]
        types = list(TransactionType)
        edit_type = st.selectbox(
            "Type",
            options=types,
            index=types.index(selected.type),
            format_func=label,
            key=f"edit_type_{selected.id}",
        )
        matching = [c for c in categories if c.type.value == edit_type.value]
        category_ids = [c.id for c in matching]
        wallet_ids = [w.id for w in wallets]

        with st.form("edit_transaction"):
            wallet_id = st.selectbox(
                "Wallet",
                options=wallet_ids,
                index=wallet_ids.index(selected.wallet_id) if selected.wallet_id in wallet_ids else 0,
                format_func=wallet_names.get,
            )
            category_id = st.selectbox(
                "Category",
                options=category_ids,
                index=(
                    category_ids.index(selected.category_id)
                    if selected.category_id in category_ids else 0
                ),
                format_func=category_names.get,
            )
            amount = st.number_input(
                "Amount", value=float(selected.amount), min_value=0.0, format="%.2f"
            )
            description = st.text_input("Description", value=selected.description)
            transaction_date = st.date_input("Date", value=selected.date)

            col1, col2 = st.columns(2)
            save = col1.form_submit_button("💾 Update", type="primary")
            delete = col2.form_submit_button("🗑️ Delete")

        if save:
            try:
                run_async(components.transactions.update_transaction(selected.id, {
                    "type": edit_type,
                    "wallet_id": wallet_id,
                    "category_id": category_id,
                    "amount": Decimal(str(amount)),
                    "description": description,
                    "date": transaction_date,
                }))
                st.success("Transaction updated")
                st.rerun()
            except Exception as e:
                st.error(f"Failed to update: {str(e)}")
        if delete:
            try:
                run_async(components.transactions.delete_transaction(selected.id))
                st.success("Transaction deleted")
                st.rerun()
            except Exception as e:
                st.error(f"Failed to delete: {str(e)}")


def render_wallets_page(components: AppComponents):
    """Render the wallets and bank accounts page."""
    st.title("🏦 Wallets & Banks")

    wallets = run_async(components.wallets.get_wallets())
    total = run_async(components.wallets.get_total_balance())
    st.metric("Total Balance", money(total))

    for wallet in wallets:
        with st.expander(f"{wallet.name} · {money(wallet.balance)}"):
            st.markdown(f"**Type:** {label(wallet.type)}")
            st.markdown(f"**Account:** {wallet.account_number}")
            with st.form(f"edit_wallet_{wallet.id}"):
                name = st.text_input("Name", value=wallet.name)
                account_number = st.text_input("Account Number", value=wallet.account_number)
                color = st.color_picker("Color", value=wallet.color)
                col1, col2 = st.columns(2)
                save = col1.form_submit_button("💾 Update")
                delete = col2.form_submit_button("🗑️ Deactivate")
            if save:
                try:
                    run_async(components.wallets.update_wallet(wallet.id, {
                        "name": name,
                        "account_number": account_number,
                        "color": color.upper(),
                    }))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to update: {str(e)}")
            if delete:
                run_async(components.wallets.delete_wallet(wallet.id))
                st.rerun()

    st.markdown("---")
    st.subheader("➕ Add Wallet")
    with st.form("add_wallet", clear_on_submit=True):
        name = st.text_input("Name *", placeholder="e.g., BCA, GoPay")
        account_number = st.text_input("Account Number *")
        wallet_type = st.selectbox("Type *", options=list(WalletType), format_func=label)
        balance = st.number_input("Opening Balance", value=0.0, step=1000.0, format="%.2f")
        color = st.color_picker("Color", value="#3B82F6")

        if st.form_submit_button("💾 Save Wallet", type="primary"):
            if not name or not account_number:
                st.error("Please enter a name and account number")
            else:
                try:
                    run_async(components.wallets.create_wallet(
                        name=name,
                        account_number=account_number,
                        wallet_type=wallet_type,
                        balance=Decimal(str(balance)),
                        color=color.upper(),
                    ))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to save: {str(e)}")


def render_categories_page(components: AppComponents):
    """Render the categories page."""
    st.title("🏷️ Categories")

    categories = run_async(components.categories.get_categories_with_usage())

    if not categories:
        st.markdown("""
        <div class="info-box">
            <h4>No categories yet</h4>
            <p>Start with a ready-made set of income, expense, goal, loan and asset categories.</p>
        </div>
        """, unsafe_allow_html=True)
        if st.button("✨ Create Default Categories", type="primary"):
            run_async(components.categories.create_default_categories())
            st.rerun()

    type_options = CategoryService.get_category_types()
    for info in type_options:
        in_type = [c for c in categories if c.type.value == info["value"]]
        if not in_type:
            continue
        st.subheader(info["label"])
        st.caption(info["description"])
        for category in in_type:
            col1, col2, col3 = st.columns([4, 2, 1])
            col1.markdown(
                f"<span style='color:{category.color}'>●</span> **{category.name}**",
                unsafe_allow_html=True,
            )
            col2.caption(f"Used {category.usage_count} times")
            if col3.button("🗑️", key=f"delete_category_{category.id}"):
                try:
                    run_async(components.categories.delete_category(category.id))
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

    st.markdown("---")
    st.subheader("➕ Add Category")
    with st.form("add_category", clear_on_submit=True):
        name = st.text_input("Name *")
        category_type = st.selectbox("Type *", options=list(CategoryType), format_func=label)
        color = st.color_picker("Color", value="#6B7280")
        icon = st.text_input("Icon", value="Tag")

        if st.form_submit_button("💾 Save Category", type="primary"):
            if not name:
                st.error("Please enter a name")
            else:
                try:
                    run_async(components.categories.create_category(
                        name=name,
                        category_type=category_type,
                        color=color.upper(),
                        icon=icon or "Tag",
                    ))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to save: {str(e)}")


def render_budgets_page(components: AppComponents):
    """Render the monthly budgets page."""
    st.title("📅 Monthly Budgets")

    picked = st.date_input("Month", value=date.today(), help="Any day in the month")
    month = month_key(picked)

    budgets = run_async(components.budgets.get_budgets(month))
    overview = run_async(components.budgets.get_budget_overview(month))

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Budgeted", money(overview.total_budget))
    col2.metric("Spent", money(overview.total_spent))
    col3.metric("On Track", overview.on_track_count)
    col4.metric("Over Budget", overview.over_budget_count)

    st.markdown("---")
    if not budgets:
        st.info(f"No budgets set for {month}.")

    for budget in budgets:
        name = budget.category.name if budget.category else "Unknown"
        st.markdown(
            f"**{name}**: {money(budget.spent)} of {money(budget.amount)} "
            f"({budget.utilization_rate:.0f}%)"
        )
        st.progress(min(budget.utilization_rate, 100.0) / 100)
        if budget.is_over_budget:
            st.error(f"Over budget by {money(-budget.remaining)}")
        col1, col2 = st.columns([4, 1])
        new_amount = col1.number_input(
            "Budget amount",
            value=float(budget.amount),
            min_value=0.0,
            step=10000.0,
            key=f"budget_amount_{budget.id}",
            label_visibility="collapsed",
        )
        if col2.button("💾", key=f"update_budget_{budget.id}"):
            run_async(components.budgets.update_budget(
                budget.id, {"amount": Decimal(str(new_amount))}
            ))
            st.rerun()
        if col2.button("🗑️", key=f"delete_budget_{budget.id}"):
            run_async(components.budgets.delete_budget(budget.id))
            st.rerun()

    st.markdown("---")
    st.subheader("➕ Set a Budget")
    expense_categories = run_async(
        components.categories.get_categories_by_type(CategoryType.EXPENSE)
    )
    if not expense_categories:
        st.info("Create an expense category first.")
        return

    names = {c.id: c.name for c in expense_categories}
    with st.form("add_budget", clear_on_submit=True):
        category_id = st.selectbox("Category *", options=list(names), format_func=names.get)
        amount = st.number_input("Amount *", min_value=0.0, step=10000.0, format="%.2f")

        if st.form_submit_button("💾 Save Budget", type="primary"):
            try:
                run_async(components.budgets.create_budget(
                    category_id=category_id,
                    amount=Decimal(str(amount)),
                    month=month,
                ))
                st.rerun()
            except Exception as e:
                st.error(f"Failed to save: {str(e)}")


def render_reports_page(components: AppComponents):
    """Render the reports and analytics page."""
    st.title("📊 Reports & Analytics")

    default_period = ReportPeriod(get_settings().app.default_report_period)
    periods = list(ReportPeriod)
    period = st.selectbox(
        "Period",
        options=periods,
        index=periods.index(default_period),
        format_func=PERIOD_LABELS.get,
    )

    try:
        report = run_async(components.reports.get_report_data(period))
    except Exception as e:
        st.error(f"Could not build the report: {str(e)}")
        return

    summary = report.summary
    st.caption(f"{report.start_date:%d %b %Y} to {report.end_date:%d %b %Y}")

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", money(summary.total_income))
    col2.metric("Expenses", money(summary.total_expenses))
    col3.metric("Net Savings", money(summary.net_savings))
    col4.metric("Savings Rate", f"{summary.savings_rate:.1f}%")

    if report.insights:
        st.markdown("---")
        st.subheader("💡 Insights")
        for insight in report.insights:
            st.markdown(f"""
            <div class="{INSIGHT_BOXES[insight.type]}">
                <h4>{insight.title}</h4>
                <p>{insight.description}</p>
            </div>
            """, unsafe_allow_html=True)

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Monthly Trend")
        if report.monthly_trend:
            st.line_chart(
                [
                    {"Month": p.label, "Income": float(p.income), "Expense": float(p.expense)}
                    for p in report.monthly_trend
                ],
                x="Month",
                y=["Income", "Expense"],
            )
    with col2:
        st.subheader("Spending by Category")
        if report.category_breakdown:
            st.dataframe(
                [
                    {
                        "Category": c.name,
                        "Amount": money(c.amount),
                        "Share": f"{c.percentage:.1f}%",
                        "Transactions": c.transaction_count,
                    }
                    for c in report.category_breakdown
                ],
                use_container_width=True,
                hide_index=True,
            )

    if report.wallet_performance:
        st.subheader("Wallet Performance")
        st.dataframe(
            [
                {
                    "Wallet": w.name,
                    "Income": money(w.total_income),
                    "Expenses": money(w.total_expenses),
                    "Net Flow": money(w.net_flow),
                    "Transactions": w.transaction_count,
                }
                for w in report.wallet_performance
            ],
            use_container_width=True,
            hide_index=True,
        )

    if report.daily_spending:
        st.subheader("Daily Spending (last 30 days)")
        st.bar_chart(
            [{"Date": d.date.isoformat(), "Amount": float(d.amount)} for d in report.daily_spending],
            x="Date",
            y="Amount",
        )

    if report.budget_analysis:
        st.subheader("Budget Analysis (this month)")
        st.dataframe(
            [
                {
                    "Category": b.category_name,
                    "Budget": money(b.budget_amount),
                    "Spent": money(b.spent_amount),
                    "Remaining": money(b.remaining_amount),
                    "Used": f"{b.utilization_rate:.1f}%",
                    "Status": b.status.value,
                }
                for b in report.budget_analysis
            ],
            use_container_width=True,
            hide_index=True,
        )

    st.markdown("---")
    if st.button("📄 Prepare CSV Export"):
        st.session_state.report_csv = run_async(
            components.reports.export_report_csv(report, period)
        )
    if st.session_state.get("report_csv"):
        st.download_button(
            "⬇️ Download CSV",
            data=st.session_state.report_csv,
            file_name=f"financial-report-{period.value}-{date.today().isoformat()}.csv",
            mime="text/csv",
        )


def render_goals_page(components: AppComponents):
    """Render the goals and loans page."""
    st.title("🎯 Goals & Loans")

    service = components.goals_loans
    stats = run_async(service.get_stats())

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Saved Towards Goals", money(stats.total_saved))
    col2.metric("Still Owed", money(stats.total_owed))
    col3.metric("Active", stats.active_items)
    col4.metric("Completed", stats.completed_items)

    type_filter = st.radio(
        "Show",
        options=[None, GoalLoanType.GOAL, GoalLoanType.LOAN],
        format_func=lambda x: "All" if x is None else label(x) + "s",
        horizontal=True,
    )
    items = run_async(service.get_goals_and_loans(item_type=type_filter))

    for item in items:
        icon = "🎯" if item.type == GoalLoanType.GOAL else "🏦"
        with st.expander(f"{icon} {item.title} · {item.progress_percentage:.0f}% · {label(item.status)}"):
            st.progress(item.progress_percentage / 100)
            col1, col2, col3 = st.columns(3)
            col1.metric("Current", money(item.current_amount))
            col2.metric("Target", money(item.target_amount))
            col3.metric("Remaining", money(item.remaining_amount))
            st.markdown(
                f"**Target date:** {item.target_date:%d %b %Y} "
                f"({item.months_remaining} months left)"
            )
            if not item.is_on_track:
                st.warning("Behind schedule")
            if item.next_payment_date:
                st.markdown(f"**Next payment:** {item.next_payment_date:%d %b %Y}")

            with st.form(f"payment_{item.id}", clear_on_submit=True):
                amount = st.number_input("Amount", min_value=0.0, step=10000.0, format="%.2f")
                notes = st.text_input("Notes")
                if st.form_submit_button("💵 Add Payment"):
                    if amount <= 0:
                        st.error("Please enter a valid amount")
                    else:
                        run_async(service.add_payment(item.id, Decimal(str(amount)), notes=notes or None))
                        st.rerun()

            col1, col2, col3 = st.columns(3)
            if item.status in (GoalLoanStatus.ACTIVE, GoalLoanStatus.PAUSED):
                toggled = (
                    GoalLoanStatus.PAUSED if item.status == GoalLoanStatus.ACTIVE
                    else GoalLoanStatus.ACTIVE
                )
                if col1.button(f"⏯️ {label(toggled)}", key=f"toggle_{item.id}"):
                    run_async(service.toggle_status(item.id, toggled))
                    st.rerun()
            if col2.button("✅ Complete", key=f"complete_{item.id}"):
                run_async(service.complete_goal_loan(item.id))
                st.rerun()
            if col3.button("🗑️ Delete", key=f"delete_goal_{item.id}"):
                run_async(service.delete_goal_loan(item.id))
                st.rerun()

    st.markdown("---")
    st.subheader("➕ New Goal or Loan")
    wallets = run_async(components.wallets.get_wallets())
    wallet_names = {w.id: w.name for w in wallets}
    with st.form("add_goal_loan", clear_on_submit=True):
        item_type = st.selectbox("Type *", options=list(GoalLoanType), format_func=label)
        title = st.text_input("Title *")
        category = st.selectbox("Category", options=list(GoalLoanCategory), format_func=label)
        target_amount = st.number_input("Target Amount *", min_value=0.0, step=100000.0, format="%.2f")
        target_date = st.date_input("Target Date *", value=date.today())
        monthly_payment = st.number_input("Monthly Payment", min_value=0.0, step=10000.0)
        priority = st.selectbox("Priority", options=list(Priority), index=1, format_func=label)
        payment_source = st.selectbox(
            "Payment Source",
            options=[None] + list(wallet_names),
            format_func=lambda x: "None" if x is None else wallet_names[x],
        )
        lender_name = st.text_input("Lender (loans only)")

        if st.form_submit_button("💾 Save", type="primary"):
            if not title or target_amount <= 0:
                st.error("Please enter a title and a target amount")
            else:
                try:
                    run_async(service.create_goal_loan(
                        title=title,
                        item_type=item_type,
                        target_amount=Decimal(str(target_amount)),
                        target_date=target_date,
                        category=category,
                        monthly_payment=Decimal(str(monthly_payment)),
                        priority=priority,
                        payment_source=payment_source,
                        lender_name=lender_name or None,
                    ))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to save: {str(e)}")


def render_assets_page(components: AppComponents):
    """Render the assets page."""
    st.title("💎 Assets")

    service = components.assets
    stats = run_async(service.get_asset_stats())

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Assets", stats.total_assets)
    col2.metric("Current Value", money(stats.total_current_value))
    col3.metric("Purchase Value", money(stats.total_purchase_value))
    col4.metric(
        "Gain / Loss",
        money(stats.total_gain_loss),
        delta=f"{stats.total_gain_loss_percentage:.1f}%",
    )

    stale = run_async(service.get_assets_needing_update())
    if stale:
        st.warning(
            f"{len(stale)} asset(s) have not been revalued in 30 days: "
            + ", ".join(a.name for a in stale)
        )

    if stats.category_breakdown:
        st.subheader("By Category")
        for row in stats.category_breakdown:
            st.markdown(
                f"**{label(row.category)}** · {row.count} · {money(row.value)} "
                f"({row.percentage:.1f}%)"
            )

    category_filter = st.selectbox(
        "Show",
        options=[None] + list(AssetCategory),
        format_func=lambda x: "All" if x is None else label(x),
    )
    assets = run_async(service.get_assets(category=category_filter))

    for asset in assets:
        sign = "📈" if asset.gain_loss >= 0 else "📉"
        with st.expander(f"{sign} {asset.name} · {money(asset.current_value)} · {label(asset.category)}"):
            col1, col2, col3 = st.columns(3)
            col1.metric("Purchase", money(asset.purchase_value))
            col2.metric("Current", money(asset.current_value))
            col3.metric("Gain / Loss", money(asset.gain_loss), delta=f"{asset.gain_loss_percentage:.1f}%")
            st.markdown(
                f"**Bought:** {asset.purchase_date:%d %b %Y} ({asset.months_owned} months ago) · "
                f"**Condition:** {label(asset.condition)}"
            )
            if asset.projected_value is not None:
                st.markdown(f"**Projected value today:** {money(asset.projected_value)}")
            if asset.location:
                st.markdown(f"**Location:** {asset.location}")
            if asset.notes:
                st.caption(asset.notes)

            with st.form(f"revalue_{asset.id}", clear_on_submit=True):
                new_value = st.number_input(
                    "New Value", min_value=0.0, value=float(asset.current_value), step=100000.0
                )
                notes = st.text_input("Notes")
                if st.form_submit_button("🔄 Update Value"):
                    run_async(service.update_asset_value(
                        asset.id, Decimal(str(new_value)), notes=notes or None
                    ))
                    st.rerun()

            if st.button("🗑️ Delete", key=f"delete_asset_{asset.id}"):
                run_async(service.delete_asset(asset.id))
                st.rerun()

    st.markdown("---")
    st.subheader("➕ New Asset")
    with st.form("add_asset", clear_on_submit=True):
        name = st.text_input("Name *")
        category = st.selectbox("Category *", options=list(AssetCategory), format_func=label)
        col1, col2 = st.columns(2)
        purchase_value = col1.number_input("Purchase Value *", min_value=0.0, step=100000.0)
        current_value = col2.number_input("Current Value *", min_value=0.0, step=100000.0)
        purchase_date = st.date_input("Purchase Date *", value=date.today())
        condition = st.selectbox("Condition", options=list(AssetCondition), index=1, format_func=label)
        col1, col2 = st.columns(2)
        monthly_contribution = col1.number_input("Monthly Contribution (investments)", min_value=0.0, step=10000.0)
        interest_rate = col2.number_input("Annual Interest Rate % (investments)", min_value=0.0, max_value=100.0)
        location = st.text_input("Location")
        description = st.text_area("Description")

        if st.form_submit_button("💾 Save", type="primary"):
            if not name:
                st.error("Please enter a name")
            else:
                try:
                    run_async(service.create_asset(
                        name=name,
                        category=category,
                        current_value=Decimal(str(current_value)),
                        purchase_value=Decimal(str(purchase_value)),
                        purchase_date=purchase_date,
                        condition=condition,
                        monthly_contribution=Decimal(str(monthly_contribution)),
                        interest_rate=Decimal(str(interest_rate)),
                        location=location or None,
                        description=description or None,
                    ))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to save: {str(e)}")


def render_receipt_page(components: AppComponents):
    """Render the receipt scanning page."""
    st.title("🧾 Scan Receipt")
    st.markdown("Upload a photo of a receipt and we'll fill in the transaction for you.")

    receipt_flow = components.receipt_flow

    # Initialize session state
    if "scan_state" not in st.session_state:
        st.session_state.scan_state = "idle"  # idle, processing, reviewing, saved
    if "extracted_receipt" not in st.session_state:
        st.session_state.extracted_receipt = None
    if "correlation_id" not in st.session_state:
        st.session_state.correlation_id = None

    # Step 1: Upload
    uploaded_file = st.file_uploader(
        "Choose a receipt photo",
        type=get_settings().app.supported_formats_list,
        help="Take a clear, well-lit photo of the receipt",
    )

    if uploaded_file and st.session_state.scan_state == "idle":
        if st.button("🔍 Analyze Receipt", type="primary"):
            st.session_state.correlation_id = create_correlation_id()
            st.session_state.scan_state = "processing"
            st.rerun()

    # Step 2: Processing
    if st.session_state.scan_state == "processing" and uploaded_file:
        with st.spinner("Reading your receipt... Please wait."):
            try:
                _, extracted, validation, message = run_async(
                    receipt_flow.analyze(
                        image_bytes=uploaded_file.getvalue(),
                        filename=uploaded_file.name,
                        mime_type=uploaded_file.type,
                        correlation_id=st.session_state.correlation_id,
                    )
                )
                st.session_state.extracted_receipt = extracted
                st.session_state.validation = validation
                st.session_state.val_message = message
                st.session_state.scan_state = "reviewing"
                st.rerun()
            except (InvalidReceiptImageError, ReceiptAnalysisError) as e:
                st.session_state.scan_state = "idle"
                st.markdown(f"""
                <div class="error-box">
                    <h4>❌ Could not read the receipt</h4>
                    <p>{e}</p>
                </div>
                """, unsafe_allow_html=True)
                st.stop()

    # Step 3: Review and Confirm
    if st.session_state.scan_state == "reviewing":
        extracted = st.session_state.extracted_receipt
        validation = st.session_state.validation

        st.markdown("---")
        st.subheader("📋 Review Extracted Data")

        if validation.is_valid and not validation.warnings:
            st.markdown("""
            <div class="success-box">
                <h4>✅ Analysis Successful</h4>
                <p>Please review the details below and make any corrections.</p>
            </div>
            """, unsafe_allow_html=True)
        else:
            st.markdown(f"""
            <div class="warning-box">
                <h4>⚠️ Please Review</h4>
                <p>{st.session_state.val_message}</p>
            </div>
            """, unsafe_allow_html=True)

        wallets = run_async(components.wallets.get_wallets())
        if not wallets:
            st.error("Add a wallet on the Wallets & Banks page first.")
            return

        st.markdown("*You can edit any field before saving*")

        transaction_type = st.radio(
            "Type *",
            options=list(TransactionType),
            index=list(TransactionType).index(extracted.type),
            format_func=label,
            horizontal=True,
        )
        categories = run_async(components.categories.get_categories())
        matching = [c for c in categories if c.type.value == transaction_type.value]
        category_ids = [c.id for c in matching]
        category_names = {c.id: c.name for c in matching}

        suggestion = None
        if matching:
            suggestion = run_async(receipt_flow.suggest_category(extracted, categories))

        col1, col2 = st.columns(2)

        with col1:
            wallet_names = {w.id: w.name for w in wallets}
            wallet_id = st.selectbox(
                "Wallet *", options=list(wallet_names), format_func=wallet_names.get
            )

            default_idx = 0
            if suggestion and suggestion.category_id in category_ids:
                default_idx = category_ids.index(suggestion.category_id)
            category_id = st.selectbox(
                "Category *",
                options=category_ids,
                index=default_idx,
                format_func=category_names.get,
            )
            if suggestion:
                st.caption(f"Suggested: {suggestion.category_name} ({suggestion.reasoning})")

            amount = st.number_input(
                "Amount *",
                value=float(extracted.amount) if extracted.amount else 0.0,
                min_value=0.0,
                step=1000.0,
                format="%.2f",
            )

        with col2:
            transaction_date = st.date_input(
                "Date *",
                value=extracted.date or date.today(),
            )
            description = st.text_area(
                "Description *",
                value=extracted.description or "",
            )

        st.markdown("---")

        col1, col2, col3 = st.columns([2, 2, 1])

        with col1:
            if st.button("✅ Confirm and Save", type="primary"):
                if category_id is None:
                    st.error("Please create a category of this type first")
                elif amount <= 0:
                    st.error("Please enter a valid amount")
                elif not description:
                    st.error("Please enter a description")
                else:
                    try:
                        transaction = run_async(
                            receipt_flow.confirm_and_save(
                                extracted=extracted,
                                wallet_id=wallet_id,
                                category_id=category_id,
                                amount=Decimal(str(amount)),
                                description=description,
                                transaction_date=transaction_date,
                                transaction_type=transaction_type,
                                correlation_id=st.session_state.correlation_id,
                            )
                        )
                        st.session_state.scan_state = "saved"
                        st.session_state.saved_transaction = transaction
                        st.rerun()
                    except Exception as e:
                        st.error(f"Failed to save: {str(e)}")

        with col2:
            if st.button("❌ Reject / Start Over"):
                run_async(
                    receipt_flow.reject(
                        extracted=extracted,
                        reason="User rejected",
                        correlation_id=st.session_state.correlation_id,
                    )
                )
                st.session_state.scan_state = "idle"
                st.session_state.extracted_receipt = None
                st.rerun()

    # Step 4: Success
    if st.session_state.scan_state == "saved":
        transaction = st.session_state.saved_transaction

        st.markdown(f"""
        <div class="success-box">
            <h3>✅ Transaction Saved!</h3>
            <p><strong>Description:</strong> {transaction.description}</p>
            <p><strong>Amount:</strong> {money(transaction.amount)}</p>
            <p><strong>Type:</strong> {label(transaction.type)}</p>
            <p><strong>Date:</strong> {transaction.date.strftime('%d %B %Y')}</p>
        </div>
        """, unsafe_allow_html=True)

        if st.button("📤 Scan Another Receipt"):
            st.session_state.scan_state = "idle"
            st.session_state.extracted_receipt = None
            st.session_state.saved_transaction = None
            st.rerun()


def render_query_page(components: AppComponents):
    """Render the Ask AI page."""
    st.title("🤖 Ask AI")
    st.markdown("Ask anything about your income and spending.")

    chat = components.chat
    sessions = run_async(chat.get_chat_sessions())
    if "chat_session_id" not in st.session_state:
        st.session_state.chat_session_id = (
            sessions[0].session_id if sessions else chat.new_session_id()
        )

    with st.sidebar.expander("💬 Conversations", expanded=True):
        if st.button("➕ New conversation"):
            st.session_state.chat_session_id = chat.new_session_id()
            st.rerun()
        for session in sessions:
            title = session.first_message[:40]
            current = session.session_id == st.session_state.chat_session_id
            col1, col2 = st.columns([4, 1])
            if col1.button(("▶ " if current else "") + title, key=f"session_{session.session_id}"):
                st.session_state.chat_session_id = session.session_id
                st.rerun()
            if col2.button("🗑️", key=f"delete_session_{session.session_id}"):
                run_async(chat.delete_session(session.session_id))
                if current:
                    del st.session_state.chat_session_id
                st.rerun()

    with st.expander("📝 Example Questions"):
        st.markdown("""
        - "How much did I spend on food last month?"
        - "What was my total income this year?"
        - "List my transport expenses from March"
        - "Did I pay for electricity this month?"
        - "Compare my spending by category in the last 3 months"
        """)

    session_id = st.session_state.chat_session_id
    for message in run_async(chat.get_messages(session_id)):
        role = "user" if message.type == ChatMessageType.USER else "assistant"
        with st.chat_message(role):
            st.markdown(message.message)

    question = st.chat_input("e.g., How much did I spend on food last month?")
    if question:
        with st.chat_message("user"):
            st.markdown(question)

        with st.spinner("Looking up your records..."):
            try:
                answer, result, query = run_async(
                    components.query_flow.answer_question(
                        question=question,
                        correlation_id=create_correlation_id(),
                        session_id=session_id,
                    )
                )
            except Exception as e:
                st.error(f"Error: {str(e)}")
                return

        with st.chat_message("assistant"):
            st.markdown(answer)
            with st.expander("🔍 Query Details"):
                st.markdown(f"**Query Type:** {query.query_type}")
                st.markdown(f"**Description:** {result.query_description}")
                st.markdown(f"**Records Found:** {result.result_count}")
                if result.aggregation_result:
                    st.json(result.aggregation_result)
                for item in result.results[:5]:
                    st.json(item)


IMPACT_BOXES = {
    Impact.HIGH: "error-box",
    Impact.MEDIUM: "warning-box",
    Impact.LOW: "info-box",
}


def render_recommendations_page(components: AppComponents):
    """Render the AI recommendations page."""
    st.title("💡 AI Recommendations")
    st.markdown("Advice based on your finances over the last 30 days.")

    if st.button("✨ Generate Recommendations", type="primary"):
        with st.spinner("Analyzing your finances..."):
            try:
                st.session_state.recommendations = run_async(
                    components.recommendations.get_recommendations()
                )
                st.session_state.implemented = set()
            except RecommendationError as e:
                st.error(str(e))

    recommendations = st.session_state.get("recommendations", [])
    implemented = st.session_state.setdefault("implemented", set())

    for rec in sorted(recommendations, key=lambda r: r.priority):
        done = rec.id in implemented
        box = "success-box" if done else IMPACT_BOXES[rec.impact]
        st.markdown(f"""
        <div class="{box}">
            <h4>{"✅ " if done else ""}{rec.title}</h4>
            <p>{rec.description}</p>
            <small>{label(rec.type)} · {label(rec.impact)} impact · priority {rec.priority} · {rec.timeframe}</small>
        </div>
        """, unsafe_allow_html=True)
        if rec.potential_saving:
            st.markdown(f"**Potential saving:** {money(rec.potential_saving)} per month")
        for step in rec.action_items:
            st.markdown(f"- {step}")
        toggle = "↩️ Mark as not done" if done else "✔️ Mark as done"
        if st.button(toggle, key=f"implemented_{rec.id}"):
            implemented.symmetric_difference_update({rec.id})
            st.rerun()


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if components.storage_connected:
        st.success("✅ Spreadsheet reachable")
    else:
        st.warning("Using in-memory storage. Data is lost when the app restarts.")

    app_settings = get_settings().app
    if app_settings.user_id is None:
        st.warning("USER_ID is not set; data is stored under a temporary user for this session.")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        f"**Environment:** {app_settings.app_environment}  \n"
        f"**Currency:** {app_settings.currency_code} ({app_settings.currency_symbol})  \n"
        f"**Receipt formats:** {app_settings.supported_image_formats}  \n"
        f"**Max upload size:** {app_settings.max_upload_size_mb} MB"
    )
    st.markdown(
        "To configure the application, create a `.env` file with your credentials. "
        "See `.env.example` for the required variables."
    )

    st.markdown("---")
    st.markdown("### Recent Activity")
    events = run_async(components.audit_logger.get_recent_activity(
        user_id=components.transactions.user_id,
        limit=20,
    ))
    if not events:
        st.info("No activity recorded yet.")
    else:
        st.dataframe(
            [
                {
                    "Time": event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                    "Event": label(event.event_type),
                    "Severity": event.severity.value,
                    "Description": event.description,
                }
                for event in events
            ],
            use_container_width=True,
            hide_index=True,
        )


if __name__ == "__main__":
    main()

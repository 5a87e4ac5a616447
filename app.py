"""
Manifold Margin Watch - Streamlit App

UI layer for finding Manifold positions whose annualized return if correct
is below the margin loan rate, i.e. positions worth selling to free up mana.
"""

import streamlit as st

from margin_watch.config import load_settings
from margin_watch.manifold_client import ManifoldAPIError, ManifoldClient
from margin_watch.portfolio_service import PortfolioService
from margin_watch.presentation import (
    format_mana,
    format_percentage,
    position_key,
    position_label,
    return_styles,
    summarize,
    valuations_to_csv,
    valuations_to_frame,
    without_hidden,
)
from margin_watch.ranking import SORTABLE_COLUMNS, sort_valuations
from margin_watch.structured_logger import setup_structured_logging


SORT_LABELS = {
    "Ranking": None,
    "Market": "market",
    "Position": "position",
    "Sale Value": "sale_value",
    "Payout": "payout",
    "Days": "days",
    "Return": "return",
}


@st.cache_resource
def get_service() -> PortfolioService:
    settings = load_settings()
    setup_structured_logging(
        service=settings.service_name,
        level=settings.log_level_value,
        json_format=settings.log_format == "json",
    )
    client = ManifoldClient(
        api_base=settings.api_base,
        page_size=settings.page_size,
        timeout=settings.timeout,
    )
    return PortfolioService(client, margin_rate_annual=settings.margin_rate_annual)


def initial_username() -> str:
    """Username from ?user= or ?username= so results can be shared by link."""
    params = st.query_params
    return params.get("user") or params.get("username") or ""


def run_analysis(username: str, show_all: bool):
    service = get_service()
    status = st.empty()
    with st.spinner("Analyzing portfolio..."):
        try:
            result = service.analyze_user(username, show_all=show_all, on_progress=status.caption)
        except (ManifoldAPIError, ValueError) as e:
            st.session_state["margin_result"] = None
            st.error(str(e))
            return
        finally:
            status.empty()

    st.session_state["margin_result"] = result
    st.session_state["hidden_rows"] = []
    st.query_params["user"] = result["username"]


def render_user_input():
    """Render the username input section."""
    col1, col2, col3 = st.columns([4, 1, 1])
    with col1:
        username = st.text_input(
            "Manifold Username",
            value=initial_username(),
            placeholder="e.g., Austin or https://manifold.markets/Austin",
            help="Enter a username or paste a profile URL"
        )
    with col2:
        show_all = st.toggle("Show all", help="Include positions at or above the margin rate")
    with col3:
        st.write("")
        analyze_btn = st.button("Analyze", type="primary")

    auto_run = username and "margin_result" not in st.session_state and initial_username()
    if analyze_btn or auto_run:
        run_analysis(username, show_all)

    if st.session_state.get("margin_result"):
        render_results(st.session_state["margin_result"], show_all)


def render_results(result: dict, show_all: bool):
    """Render the ranked positions table and summary metrics."""
    st.divider()

    summary = result["summary"]
    positions = get_service().rank(result["valuations"], show_all=show_all)

    st.subheader(f"Positions for {result['username']}")
    st.caption(
        f"Found {summary['flagged_positions']} of {summary['total_positions']} positions "
        f"with return below margin rate ({format_percentage(summary['margin_rate_annual'], 2)} annually)."
    )

    col1, col2 = st.columns([2, 1])
    with col1:
        sort_label = st.selectbox("Sort by", options=list(SORT_LABELS), index=0)
    with col2:
        descending = st.checkbox("Descending", value=False)

    column = SORT_LABELS[sort_label]
    if column in SORTABLE_COLUMNS:
        positions = sort_valuations(positions, column, descending=descending)

    labels = {position_key(v): position_label(v) for v in positions}
    stored = st.session_state.get("hidden_rows", [])
    hidden = st.multiselect(
        "Hide rows",
        options=list(labels),
        default=[key for key in stored if key in labels],
        format_func=labels.get,
        help="Hide positions you have already dealt with"
    )
    # keys of positions not in the current view stay hidden
    st.session_state["hidden_rows"] = hidden + [key for key in stored if key not in labels]

    visible = without_hidden(positions, hidden)
    totals = summarize(visible)

    m1, m2, m3 = st.columns(3)
    with m1:
        st.metric("Positions", totals["positions"])
    with m2:
        st.metric("Recoverable", format_mana(round(totals["recoverable"]), 0))
    with m3:
        st.metric("Payout if Correct", format_mana(round(totals["payout"]), 0))

    if not visible:
        st.info("No positions to show")
        return

    styles = return_styles(visible)
    styled_df = valuations_to_frame(visible).style.apply(lambda _: styles, subset=["Return"])

    st.dataframe(
        styled_df,
        hide_index=True,
        use_container_width=True,
        column_config={"URL": st.column_config.LinkColumn("URL", display_text="Open")}
    )

    st.subheader("Export Data")
    st.download_button(
        label="Download Positions (CSV)",
        data=valuations_to_csv(visible),
        file_name=f"margin_watch_{result['username']}.csv",
        mime="text/csv"
    )


def main():
    """Main Streamlit app entry point."""
    st.set_page_config(
        page_title="Manifold Margin Watch",
        page_icon="📉",
        layout="wide",
        initial_sidebar_state="collapsed"
    )

    st.markdown("""
        <style>
        .main .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
        }
        div[data-testid="stMetric"] {
            background: linear-gradient(135deg, #f8fafc 0%, #f1f5f9 100%);
            padding: 1rem;
            border-radius: 8px;
            border-left: 4px solid #3b82f6;
        }
        </style>
    """, unsafe_allow_html=True)

    st.title("Manifold Margin Watch")
    st.markdown(
        "📉 **Find positions whose return if correct is below the margin loan rate**"
    )

    render_user_input()

    st.divider()
    st.caption(
        "Data sourced from the Manifold API. Sale values simulate selling into the AMM "
        "and are estimates, not quotes."
    )


if __name__ == "__main__":
    main()

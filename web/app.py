#!/usr/bin/env python3
from __future__ import annotations

import io
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import streamlit as st

from call_dashboard.charts import ChartSeries, ChartSpec
from call_dashboard.config import PAGES, load_settings
from call_dashboard.dashboard import Dashboard, PageView
from call_dashboard.export import export_filename, records_to_csv, records_to_json, write_records_xlsx
from call_dashboard.kpis import PAGE_SOURCES
from call_dashboard.store import FilterCriteria

PAGE_TITLES = {
    "inbound": "Inbound Calls",
    "outbound": "Outbound Calls",
    "fcr": "First Contact Resolution",
}


def ensure_state() -> None:
    if "dashboard" not in st.session_state:
        st.session_state["dashboard"] = Dashboard(settings=load_settings())
        st.session_state["loaded"] = False


def get_dashboard() -> Dashboard:
    return st.session_state["dashboard"]


def refresh_sources(dashboard: Dashboard) -> None:
    with st.spinner("Loading call data..."):
        dashboard.refresh()
    st.session_state["loaded"] = True


def chart_frame(chart: ChartSpec) -> pd.DataFrame:
    if isinstance(chart.data, ChartSeries):
        return pd.DataFrame({"value": chart.data.series}, index=chart.data.labels)
    return pd.DataFrame(
        {"value": [point.value for point in chart.data]},
        index=[point.bucket_key for point in chart.data],
    )


def render_notifications(dashboard: Dashboard) -> None:
    for notification in dashboard.notifications:
        left, right = st.columns([12, 1])
        with left:
            if notification.level == "error":
                st.error(notification.message)
            else:
                st.warning(notification.message)
        with right:
            if st.button("Dismiss", key=f"dismiss_{notification.id}"):
                dashboard.dismiss(notification.id)
                st.rerun()


def render_filters(dashboard: Dashboard) -> None:
    settings = dashboard.settings
    current = dashboard.filters
    with st.sidebar:
        st.header("Filters")
        default_end = date.today()
        default_start = default_end - timedelta(days=settings.default_filter_days)
        use_dates = st.checkbox("Filter by date", value=bool(current.start_date or current.end_date))
        picked = st.date_input("Date range", value=(default_start, default_end), disabled=not use_dates)
        agent = st.text_input("Agent contains", value=current.agent or "")
        status = st.text_input("Status contains", value=current.status or "")
        apply_col, reset_col = st.columns(2)

        if apply_col.button("Apply", use_container_width=True):
            start: Optional[date] = None
            end: Optional[date] = None
            if use_dates and isinstance(picked, (list, tuple)) and len(picked) == 2:
                start, end = picked
            dashboard.apply_filters(
                FilterCriteria(start_date=start, end_date=end, agent=agent or None, status=status or None)
            )
            st.rerun()
        if reset_col.button("Reset", use_container_width=True):
            dashboard.reset_filters()
            st.rerun()

        st.divider()
        if st.button("Refresh data", use_container_width=True):
            refresh_sources(dashboard)
            st.rerun()


def render_cards(view: PageView) -> None:
    if not view.cards:
        return
    columns = st.columns(len(view.cards))
    for column, card in zip(columns, view.cards):
        with column:
            st.metric(card.label, card.display)
            if card.status != "ok":
                st.caption(f"Status: {card.status}")


def render_charts(view: PageView) -> None:
    for chart in view.charts:
        st.subheader(chart.title)
        frame = chart_frame(chart)
        if frame.empty:
            st.caption("Nothing to chart for the current filters.")
        elif chart.kind == "line":
            st.line_chart(frame)
        else:
            st.bar_chart(frame)


def render_downloads(dashboard: Dashboard, page: str) -> None:
    st.subheader("Export")
    columns = st.columns(len(PAGE_SOURCES[page]))
    for column, source_type in zip(columns, PAGE_SOURCES[page]):
        records = dashboard.store.query(source_type, dashboard.filters)
        name = dashboard.settings.source_name(source_type)
        with column:
            st.caption(f"{name}: {len(records)} rows")
            st.download_button(
                "CSV",
                data=records_to_csv(records).encode("utf-8"),
                file_name=export_filename(source_type, "csv", dashboard.settings),
                mime="text/csv",
                key=f"csv_{page}_{source_type}",
            )
            st.download_button(
                "JSON",
                data=records_to_json(records).encode("utf-8"),
                file_name=export_filename(source_type, "json", dashboard.settings),
                mime="application/json",
                key=f"json_{page}_{source_type}",
            )
            buffer = io.BytesIO()
            write_records_xlsx(records, buffer, sheet_title=name)
            st.download_button(
                "XLSX",
                data=buffer.getvalue(),
                file_name=export_filename(source_type, "xlsx", dashboard.settings),
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                key=f"xlsx_{page}_{source_type}",
            )


def render_page(dashboard: Dashboard, page: str) -> None:
    view = dashboard.render_page(page)
    render_cards(view)
    if view.no_data:
        st.info(view.message)
        return
    render_charts(view)
    render_downloads(dashboard, page)


def main() -> None:
    st.set_page_config(page_title="Call Performance Dashboard", page_icon="📞", layout="wide")
    ensure_state()
    dashboard = get_dashboard()
    if not st.session_state["loaded"]:
        refresh_sources(dashboard)

    st.title("Call Performance Dashboard")
    render_notifications(dashboard)
    render_filters(dashboard)

    tabs = st.tabs([PAGE_TITLES[page] for page in PAGES])
    for tab, page in zip(tabs, PAGES):
        with tab:
            render_page(dashboard, page)


if __name__ == "__main__":
    main()

# ui.py
import altair as alt
import pandas as pd
import streamlit as st

from compute import BatchResult, DayAnalysis, daily_frame
from settings import DefaultSettings

SINGLE_DAY = "Single day"
MULTI_DAY = "Multiple days"


def format_duration(seconds) -> str:
    total = int(round(seconds))
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def sidebar_settings(settings: DefaultSettings):
    st.sidebar.header("Settings")
    mode = st.sidebar.radio("Mode", [SINGLE_DAY, MULTI_DAY], index=0)
    auto_sheet = st.sidebar.checkbox("Pick sheet automatically", value=settings.sheet_index is None)
    sheet_index = None
    if not auto_sheet:
        sheet_index = int(st.sidebar.number_input("Sheet index (0 = first)", min_value=0,
                                                  value=settings.sheet_index or 0, step=1))

    st.sidebar.caption(
        f"Idle gaps over {settings.idle_threshold_seconds // 60} min count as idle; "
        f"the first {settings.break_allowance_seconds // 60} min of idle time is break allowance."
    )
    return mode, sheet_index


def idle_breakdown_frame(day: DayAnalysis) -> pd.DataFrame:
    return pd.DataFrame([{
        "From": gap.start.strftime("%H:%M:%S"),
        "To": gap.end.strftime("%H:%M:%S"),
        "Raw Gap": format_duration(gap.raw_gap_seconds),
        "Inbound Duration": format_duration(gap.inbound_offset_seconds),
        "Idle Time": format_duration(gap.idle_seconds),
    } for gap in day.idle_intervals], columns=["From", "To", "Raw Gap", "Inbound Duration", "Idle Time"])


def call_log_frame(day: DayAnalysis) -> pd.DataFrame:
    return pd.DataFrame([{
        "Time": call.start_time.strftime("%H:%M:%S"),
        "Direction": call.direction,
        "Number": call.number or "",
        "Result": call.result.capitalize(),
        "Duration": format_duration(call.duration_seconds),
    } for call in day.calls], columns=["Time", "Direction", "Number", "Result", "Duration"])


def render_day(day: DayAnalysis):
    cols = st.columns(4)
    cols[0].metric("Total Calls", day.total_calls)
    cols[1].metric("Outbound", day.outbound_calls)
    cols[2].metric("Inbound", day.inbound_calls)
    cols[3].metric("Work Time", format_duration(day.actual_work_seconds))

    st.subheader("Work Time Calculation")
    left, right = st.columns(2)
    with left:
        st.write(f"**First Call:** {day.first_call_time:%Y-%m-%d %H:%M:%S}")
        st.write(f"**Last Call End:** {day.last_call_end_time:%Y-%m-%d %H:%M:%S}")
        st.write(f"**Total Time Span:** {format_duration(day.total_time_span_seconds)}")
    with right:
        st.write(f"**Total Idle Time:** {format_duration(day.total_idle_seconds)}")
        st.write(f"**Break Allowance:** -{format_duration(day.break_allowance_seconds)}")
        st.write(f"**Excess Idle Time:** {format_duration(day.excess_idle_seconds)}")
    st.success(f"Actual Work Time: {format_duration(day.actual_work_seconds)}")

    if day.idle_intervals:
        st.subheader(f"Idle Time Breakdown ({len(day.idle_intervals)} gaps)")
        st.dataframe(idle_breakdown_frame(day), use_container_width=True)

    with st.expander("Call Log"):
        st.dataframe(call_log_frame(day), use_container_width=True)


def work_hours_chart(daily: pd.DataFrame):
    chart_df = daily.drop(columns=["date"]).assign(date_str=daily["date"].astype(str))
    return alt.Chart(chart_df).mark_bar().encode(
        x=alt.X("date_str:O", title="Date"),
        y=alt.Y("work_hours:Q", title="Work hours"),
        tooltip=["label", "date_str", "work_hours", "break_hours", "excess_break_hours"],
    ).properties(height=300)


def render_batch(result: BatchResult):
    summary = result.summary
    cols = st.columns(4)
    cols[0].metric("Days", summary.file_count)
    cols[1].metric("Total Calls", summary.total_calls)
    cols[2].metric("Total Work Hours", f"{summary.total_work_hours:.2f}")
    cols[3].metric("Avg Work Hours / Day", f"{summary.avg_work_hours_per_day:.2f}")

    cols = st.columns(3)
    cols[0].metric("Outbound", summary.total_outbound)
    cols[1].metric("Break Hours", f"{summary.total_break_hours:.2f}")
    cols[2].metric("Excess Break Hours", f"{summary.total_excess_break_hours:.2f}")

    for skipped in result.skipped:
        st.warning(f"Skipped {skipped.label}: {skipped.reason}")

    daily = daily_frame(result.days)
    st.subheader("Work hours per day")
    st.altair_chart(work_hours_chart(daily), use_container_width=True)
    st.dataframe(daily.round(2), use_container_width=True)

    tabs = st.tabs([f"{day.date} · {day.label}" for day in result.days])
    for tab, day in zip(tabs, result.days):
        with tab:
            render_day(day)

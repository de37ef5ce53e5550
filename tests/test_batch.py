"""
Tests for multi-day batch analysis and the daily fold.
"""

import datetime as dt

import pytest

from compute import (
    DecodeError,
    NoValidFiles,
    TooManyFiles,
    analyze_batch,
    daily_frame,
    summarize_days,
)
from conftest import make_row


def day_rows(day, hours_worked):
    """One outbound call covering the whole shift, plus an inbound call."""
    length = f"{int(hours_worked):02d}:{int(hours_worked % 1 * 60):02d}:00"
    return [
        make_row(f"{day} 08:00:00", length, "Outbound"),
        make_row(f"{day} 09:00:00", "00:02:00", "Inbound", "Missed"),
    ]


@pytest.fixture
def three_days():
    return [
        ("tuesday.xlsx", day_rows("2024-03-05", 8.0)),
        ("monday.xlsx", day_rows("2024-03-04", 7.5)),
        ("wednesday.xlsx", day_rows("2024-03-06", 6.5)),
    ]


class TestAnalyzeBatch:

    def test_totals_and_average(self, three_days, settings):
        result = analyze_batch(three_days, settings)
        summary = result.summary
        assert summary.file_count == 3
        assert summary.total_work_hours == pytest.approx(22.0)
        assert summary.avg_work_hours_per_day == pytest.approx(22.0 / 3)
        assert summary.total_calls == 6
        assert summary.total_outbound == 3
        assert summary.total_inbound == 3
        assert summary.total_connected == 3
        assert summary.total_break_hours == 0
        assert summary.total_excess_break_hours == 0

    def test_days_sorted_by_date_and_labelled(self, three_days, settings):
        result = analyze_batch(three_days, settings)
        assert [d.date for d in result.days] == [
            dt.date(2024, 3, 4), dt.date(2024, 3, 5), dt.date(2024, 3, 6)]
        assert [d.label for d in result.days] == ["monday.xlsx", "tuesday.xlsx", "wednesday.xlsx"]

    def test_date_comes_from_first_outbound_call(self, settings):
        rows = [
            make_row("2024-03-03 23:50:00", "00:05:00", "Inbound"),
            make_row("2024-03-04 00:10:00", "00:05:00", "Outbound"),
        ]
        result = analyze_batch([("late.csv", rows)], settings)
        assert result.days[0].date == dt.date(2024, 3, 4)

    def test_failed_files_are_skipped(self, three_days, settings):
        files = three_days + [
            ("inbound-only.xlsx", [make_row("2024-03-07 09:00:00", "00:01:00", "Inbound")]),
            ("empty.xlsx", []),
        ]
        result = analyze_batch(files, settings)
        assert result.summary.file_count == 3
        assert [s.label for s in result.skipped] == ["inbound-only.xlsx", "empty.xlsx"]
        assert "outbound" in result.skipped[0].reason

    def test_decode_errors_are_skipped(self, three_days, settings):
        payloads = dict(three_days)

        def decode(label):
            if label == "broken.xlsx":
                raise DecodeError("Could not read broken.xlsx")
            return payloads[label]

        files = [(label, label) for label, _ in three_days] + [("broken.xlsx", "broken.xlsx")]
        result = analyze_batch(files, settings, decode=decode)
        assert len(result.days) == 3
        assert result.skipped[0].label == "broken.xlsx"

    def test_too_many_files_processes_nothing(self, settings):
        decoded = []

        def decode(payload):
            decoded.append(payload)
            return day_rows("2024-03-04", 8.0)

        files = [(f"day{i}.xlsx", i) for i in range(11)]
        with pytest.raises(TooManyFiles) as excinfo:
            analyze_batch(files, settings, decode=decode)
        assert decoded == []
        assert excinfo.value.count == 11
        assert excinfo.value.limit == 10

    def test_exactly_max_files_is_allowed(self, settings):
        files = [(f"day{i}.xlsx", day_rows(f"2024-03-{i + 1:02d}", 8.0)) for i in range(10)]
        assert analyze_batch(files, settings).summary.file_count == 10

    def test_no_valid_files(self, settings):
        with pytest.raises(NoValidFiles):
            analyze_batch([("a.xlsx", []), ("b.xlsx", [make_row("x", "y", "")])], settings)


class TestSummarizeDays:

    def test_break_hours_capped_at_allowance(self, settings):
        rows = [
            make_row("2024-03-04 09:00:00", "00:00:00", "Outbound"),
            make_row("2024-03-04 11:00:00", "00:00:00", "Outbound"),
        ]
        result = analyze_batch([("long-break.csv", rows)], settings)
        summary = result.summary
        assert summary.total_break_hours == pytest.approx(0.75)
        assert summary.total_excess_break_hours == pytest.approx(1.25)
        assert summary.total_work_hours == pytest.approx(0.75)

    def test_daily_frame_columns(self, three_days, settings):
        result = analyze_batch(three_days, settings)
        daily = daily_frame(result.days)
        assert list(daily.columns) == [
            "label", "date", "total_calls", "outbound_calls", "inbound_calls",
            "connected_calls", "work_hours", "break_hours", "excess_break_hours"]
        assert daily["work_hours"].tolist() == pytest.approx([7.5, 8.0, 6.5])

    def test_daily_frame_empty(self):
        assert daily_frame([]).empty

    def test_summarize_nothing(self):
        with pytest.raises(NoValidFiles):
            summarize_days([])

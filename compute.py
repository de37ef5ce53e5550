import logging
import math
import numbers
import datetime as dt
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import time, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import yaml
from dateutil import parser as dateparser

from settings import CallDirection, DefaultSettings

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
# Days between the spreadsheet epoch (1899-12-30) and 1970-01-01
SPREADSHEET_EPOCH_OFFSET_DAYS = 25569


# ---------- Errors ----------
class AnalysisError(Exception):
    """Base class for failures surfaced to the user."""


class NoValidCalls(AnalysisError):
    def __init__(self, message="No valid calls found. Please check your data format."):
        super().__init__(message)


class NoOutboundCalls(AnalysisError):
    def __init__(self, message="No outbound calls found in the data."):
        super().__init__(message)


class TooManyFiles(AnalysisError):
    def __init__(self, count, limit):
        super().__init__(f"Too many files: {count} uploaded, at most {limit} can be analyzed at once.")
        self.count = count
        self.limit = limit


class NoValidFiles(AnalysisError):
    def __init__(self, message="None of the uploaded files contained analyzable call data."):
        super().__init__(message)


class DecodeError(AnalysisError):
    pass


class ConfigError(AnalysisError):
    pass


class DropReason(Enum):
    UNPARSEABLE_TIMESTAMP = "unparseable timestamp"
    UNPARSEABLE_DURATION = "unparseable duration"
    MISSING_DIRECTION = "missing direction"


# ---------- Config loaders ----------
def load_app_config(path):
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load app config %s: %s", path, e)
        return {}


def _optional_int(value):
    return None if value is None else int(value)


def _clean_text(value):
    text = str(value).strip()
    if not text:
        raise ValueError("must not be empty")
    return text


# Converters for the ``analysis`` section, keyed by DefaultSettings field
ANALYSIS_CONVERTERS = {
    "idle_threshold_seconds": int,
    "break_allowance_seconds": int,
    "max_files": int,
    "sheet_index": _optional_int,
    "connected_result": lambda v: _clean_text(v).lower(),
    "log_level": lambda v: _clean_text(v).upper(),
}


def _section(app_cfg, name):
    section = app_cfg.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _convert(section, key, value, converter):
    if isinstance(value, bool):
        raise ConfigError(f"Invalid value for {section}.{key}: {value!r}")
    try:
        return converter(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {section}.{key}: {value!r} ({e})") from e


def settings_from_config(app_cfg):
    if app_cfg is None:
        app_cfg = {}
    if not isinstance(app_cfg, Mapping):
        raise ConfigError(f"App config must be a mapping, got {type(app_cfg).__name__}")
    settings = DefaultSettings()

    for key, value in _section(app_cfg, "analysis").items():
        if key not in ANALYSIS_CONVERTERS:
            logger.warning("Ignoring unknown analysis setting: %s", key)
            continue
        setattr(settings, key, _convert("analysis", key, value, ANALYSIS_CONVERTERS[key]))

    for key, column in _section(app_cfg, "columns").items():
        if key not in settings.call_columns:
            logger.warning("Ignoring unknown column key: %s", key)
            continue
        if column is None:
            raise ConfigError(f"Invalid value for columns.{key}: column name is missing")
        settings.call_columns[key] = _convert("columns", key, column, _clean_text)

    level = _section(app_cfg, "logging").get("level")
    if level:
        settings.log_level = _convert("logging", "level", level, ANALYSIS_CONVERTERS["log_level"])
    return settings


# ---------- Temporal value parsing ----------
def _is_blank(raw):
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    return isinstance(raw, str) and not raw.strip()


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def parse_duration(raw) -> Optional[int]:
    """Call length in seconds.

    Accepts spreadsheet fractions of a day (``0.00284...``), ``HH:MM:SS`` and
    ``MM:SS`` text, and the ``time``/``timedelta`` cells Excel readers produce.
    Returns None when the value has none of these shapes.
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, timedelta):
        return _round_half_up(raw.total_seconds())
    if isinstance(raw, time):
        return raw.hour * 3600 + raw.minute * 60 + raw.second

    text = str(raw).strip()
    if ":" not in text:
        try:
            fraction = float(text)
        except ValueError:
            return None
        if not math.isfinite(fraction):
            return None
        return _round_half_up(fraction * SECONDS_PER_DAY)

    try:
        parts = [int(float(p)) for p in text.split(":")]
    except ValueError:
        return None
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    return None


# Text missing any part of the date parses differently against each of these
_DATE_ANCHORS = (dt.datetime(2000, 1, 1), dt.datetime(2001, 2, 2))


def _has_calendar_date(text):
    try:
        first, second = (dateparser.parse(text, default=anchor) for anchor in _DATE_ANCHORS)
    except (ValueError, OverflowError):
        return False
    return first == second


def parse_timestamp(raw) -> Optional[pd.Timestamp]:
    """Call start as a naive timestamp in the wall-clock time of the source.

    Text must carry a full calendar date; a bare time of day is rejected.
    """
    if _is_blank(raw) or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, str):
            text = raw.strip()
            if not _has_calendar_date(text):
                logger.debug("No calendar date in %r", raw)
                return None
            ts = pd.to_datetime(text, errors="coerce")
        elif isinstance(raw, numbers.Real):
            if not math.isfinite(raw):
                return None
            millis = round((raw - SPREADSHEET_EPOCH_OFFSET_DAYS) * SECONDS_PER_DAY * 1000)
            ts = pd.Timestamp(millis, unit="ms")
        else:
            ts = pd.Timestamp(raw)
    except (ValueError, TypeError, OverflowError) as e:
        logger.debug("Date parsing error for %r: %s", raw, e)
        return None

    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


# ---------- Normalization ----------
@dataclass(frozen=True)
class CallRecord:
    start_time: pd.Timestamp
    duration_seconds: int
    direction: str
    result: str
    number: Optional[str] = None
    row_index: int = 0
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def end_time(self) -> pd.Timestamp:
        return self.start_time + pd.Timedelta(seconds=self.duration_seconds)

    @property
    def is_outbound(self) -> bool:
        return self.direction == CallDirection.OUTBOUND.value

    @property
    def is_inbound(self) -> bool:
        return self.direction == CallDirection.INBOUND.value


def get_field(row, settings, key):
    # None for an absent column or an empty cell
    value = row.get(settings.call_columns[key])
    return None if _is_blank(value) else value


def _lower_text(value):
    return "" if value is None else str(value).strip().lower()


def _display_number(row, settings):
    number = get_field(row, settings, "to_number")
    if number is None:
        number = get_field(row, settings, "from_number")
    if number is None:
        return None
    if isinstance(number, float) and number.is_integer():
        number = int(number)
    return str(number)


def missing_columns(rows, settings):
    present = set()
    for row in rows:
        present.update(row.keys())
    return [settings.call_columns[k] for k in settings.required_keys
            if settings.call_columns[k] not in present]


def normalize_calls(rows, settings=None):
    settings = settings or DefaultSettings()
    missing = missing_columns(rows, settings)
    if rows and missing:
        logger.warning("Call data is missing required columns: %s", ", ".join(missing))

    records = []
    dropped = Counter()
    for index, row in enumerate(rows):
        start_time = parse_timestamp(get_field(row, settings, "start_ts"))
        duration = parse_duration(get_field(row, settings, "duration"))
        direction = _lower_text(get_field(row, settings, "direction"))

        if start_time is None:
            reason = DropReason.UNPARSEABLE_TIMESTAMP
        elif duration is None:
            reason = DropReason.UNPARSEABLE_DURATION
        elif not direction:
            reason = DropReason.MISSING_DIRECTION
        else:
            reason = None
        if reason is not None:
            dropped[reason] += 1
            logger.debug("Dropping row %d (%s): %r", index, reason.value, row)
            continue

        records.append(CallRecord(
            start_time=start_time,
            duration_seconds=duration,
            direction=direction,
            result=_lower_text(get_field(row, settings, "result")),
            number=_display_number(row, settings),
            row_index=index,
            raw=MappingProxyType(dict(row)),
        ))

    if dropped:
        logger.info("Dropped %d of %d rows: %s", sum(dropped.values()), len(rows),
                    ", ".join(f"{r.value}={n}" for r, n in dropped.items()))
    return records


# ---------- Single-day analysis ----------
@dataclass(frozen=True)
class IdleInterval:
    start: pd.Timestamp
    end: pd.Timestamp
    raw_gap_seconds: float
    inbound_offset_seconds: int
    idle_seconds: float
    gap_calls: Tuple[CallRecord, ...] = ()


@dataclass(frozen=True)
class DayAnalysis:
    total_calls: int
    outbound_calls: int
    inbound_calls: int
    connected_calls: int
    first_call_time: pd.Timestamp
    last_call_end_time: pd.Timestamp
    total_time_span_seconds: float
    total_idle_seconds: float
    break_allowance_seconds: int
    excess_idle_seconds: float
    actual_work_seconds: float
    calls: Tuple[CallRecord, ...] = ()
    idle_intervals: Tuple[IdleInterval, ...] = ()
    label: Optional[str] = None
    date: Optional[dt.date] = None

    @property
    def work_hours(self):
        return self.actual_work_seconds / 3600

    @property
    def break_hours(self):
        return min(self.total_idle_seconds, self.break_allowance_seconds) / 3600

    @property
    def excess_break_hours(self):
        return self.excess_idle_seconds / 3600


def _seconds_between(start, end):
    return (end - start).total_seconds()


def analyze_day(records: Sequence[CallRecord], settings: DefaultSettings = None) -> DayAnalysis:
    settings = settings or DefaultSettings()
    if not records:
        raise NoValidCalls()

    calls = sorted(records, key=lambda c: c.start_time)
    outbound = [c for c in calls if c.is_outbound]
    if not outbound:
        raise NoOutboundCalls()

    first_outbound, last_outbound = outbound[0], outbound[-1]
    last_call_end = last_outbound.end_time
    total_span = _seconds_between(first_outbound.start_time, last_call_end)

    total_idle = 0
    idle_intervals = []
    for current, following in zip(outbound, outbound[1:]):
        current_end = current.end_time
        gap = _seconds_between(current_end, following.start_time)
        gap_calls = tuple(
            c for c in calls
            if current_end < c.start_time < following.start_time
            and c.is_inbound and c.result == settings.connected_result
        )
        inbound_offset = sum(c.duration_seconds for c in gap_calls)
        idle = gap - inbound_offset
        if idle > settings.idle_threshold_seconds:
            total_idle += idle
            idle_intervals.append(IdleInterval(
                start=current_end,
                end=following.start_time,
                raw_gap_seconds=gap,
                inbound_offset_seconds=inbound_offset,
                idle_seconds=idle,
                gap_calls=gap_calls,
            ))

    excess_idle = max(0, total_idle - settings.break_allowance_seconds)
    analysis = DayAnalysis(
        total_calls=len(calls),
        outbound_calls=len(outbound),
        inbound_calls=sum(1 for c in calls if c.is_inbound),
        connected_calls=sum(1 for c in calls if c.result == settings.connected_result),
        first_call_time=first_outbound.start_time,
        last_call_end_time=last_call_end,
        total_time_span_seconds=total_span,
        total_idle_seconds=total_idle,
        break_allowance_seconds=settings.break_allowance_seconds,
        excess_idle_seconds=excess_idle,
        actual_work_seconds=total_span - excess_idle,
        calls=tuple(calls),
        idle_intervals=tuple(idle_intervals),
    )
    logger.info("Analyzed %d calls (%d outbound): span=%ss idle=%ss work=%ss",
                analysis.total_calls, analysis.outbound_calls, total_span,
                total_idle, analysis.actual_work_seconds)
    return analysis


def analyze_rows(rows, settings=None):
    return analyze_day(normalize_calls(rows, settings), settings)


# ---------- Multi-day aggregation ----------
@dataclass(frozen=True)
class AggregateSummary:
    file_count: int
    total_calls: int
    total_outbound: int
    total_inbound: int
    total_connected: int
    total_work_hours: float
    total_break_hours: float
    total_excess_break_hours: float
    avg_work_hours_per_day: float


@dataclass(frozen=True)
class SkippedFile:
    label: str
    reason: str


@dataclass(frozen=True)
class BatchResult:
    days: Tuple[DayAnalysis, ...]
    summary: AggregateSummary
    skipped: Tuple[SkippedFile, ...] = ()


DAILY_COLUMNS = ["label", "date", "total_calls", "outbound_calls", "inbound_calls",
                 "connected_calls", "work_hours", "break_hours", "excess_break_hours"]


def daily_frame(days):
    df = pd.DataFrame([{
        "label": d.label,
        "date": d.date,
        "total_calls": d.total_calls,
        "outbound_calls": d.outbound_calls,
        "inbound_calls": d.inbound_calls,
        "connected_calls": d.connected_calls,
        "actual_work_seconds": d.actual_work_seconds,
        "total_idle_seconds": d.total_idle_seconds,
        "break_allowance_seconds": d.break_allowance_seconds,
        "excess_idle_seconds": d.excess_idle_seconds,
    } for d in days])
    if df.empty:
        return pd.DataFrame(columns=DAILY_COLUMNS)
    df["work_hours"] = df["actual_work_seconds"] / 3600
    df["break_hours"] = np.minimum(df["total_idle_seconds"], df["break_allowance_seconds"]) / 3600
    df["excess_break_hours"] = df["excess_idle_seconds"] / 3600
    return df[DAILY_COLUMNS]


def summarize_days(days):
    if not days:
        raise NoValidFiles()
    daily = daily_frame(days)
    file_count = len(daily)
    total_work = float(daily["work_hours"].sum())
    return AggregateSummary(
        file_count=file_count,
        total_calls=int(daily["total_calls"].sum()),
        total_outbound=int(daily["outbound_calls"].sum()),
        total_inbound=int(daily["inbound_calls"].sum()),
        total_connected=int(daily["connected_calls"].sum()),
        total_work_hours=total_work,
        total_break_hours=float(daily["break_hours"].sum()),
        total_excess_break_hours=float(daily["excess_break_hours"].sum()),
        avg_work_hours_per_day=total_work / file_count,
    )


def analyze_batch(files: Sequence[Tuple[str, Any]], settings: DefaultSettings = None,
                  decode: Optional[Callable[[Any], Sequence[Mapping[str, Any]]]] = None) -> BatchResult:
    """Analyze one file per day and fold the results.

    ``files`` holds ``(label, payload)`` pairs. With ``decode`` each payload is
    turned into rows first; without it the payload must already be rows.
    Files that cannot be analyzed are skipped and reported in the result.
    """
    settings = settings or DefaultSettings()
    if len(files) > settings.max_files:
        raise TooManyFiles(len(files), settings.max_files)

    days = []
    skipped = []
    for label, payload in files:
        try:
            rows = decode(payload) if decode is not None else payload
            day = analyze_rows(rows, settings)
        except AnalysisError as e:
            logger.warning("Skipping %s: %s", label, e)
            skipped.append(SkippedFile(label, str(e)))
            continue
        days.append(replace(day, label=label, date=day.first_call_time.date()))

    if not days:
        raise NoValidFiles()

    days.sort(key=lambda d: d.date)
    summary = summarize_days(days)
    logger.info("Batch complete: %d days analyzed, %d skipped, %.2f work hours",
                summary.file_count, len(skipped), summary.total_work_hours)
    return BatchResult(days=tuple(days), summary=summary, skipped=tuple(skipped))

# settings.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class CallDirection(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


def _default_call_columns():
    return {
        "start_ts": "Call Start Time",
        "duration": "Call Length",
        "direction": "Call Direction",
        "result": "Result",
        "to_number": "To Number",      # display only
        "from_number": "From Number",  # display only
    }


@dataclass
class DefaultSettings:
    # Idle gaps at or below this are normal between-call activity
    idle_threshold_seconds: int = 480
    # Accumulated idle time accepted as a legitimate break (45 minutes)
    break_allowance_seconds: int = 45 * 60
    # Upload cap for multi-day mode
    max_files: int = 10
    # None: second sheet if present, else first
    sheet_index: Optional[int] = None
    # Result value that marks an answered call
    connected_result: str = "connected"
    log_level: str = "INFO"

    # Column names expected in uploads (you can remap in config/app_config.yaml)
    call_columns: dict = field(default_factory=_default_call_columns)

    required_keys = ("start_ts", "duration", "direction", "result")

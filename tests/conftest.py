import pytest

from settings import DefaultSettings


def make_row(start, length, direction, result="Connected", number="5551234"):
    return {
        "Call Start Time": start,
        "Call Length": length,
        "Call Direction": direction,
        "Result": result,
        "To Number": number,
    }


@pytest.fixture
def settings():
    return DefaultSettings()


@pytest.fixture
def scenario_rows():
    """Two outbound calls with one connected inbound call in the gap between them."""
    return [
        make_row("2024-03-04 09:00:00", "00:01:00", "Outbound"),
        make_row("2024-03-04 09:16:40", "00:00:30", "Outbound"),
        make_row("2024-03-04 09:08:20", "00:00:50", "Inbound"),
    ]

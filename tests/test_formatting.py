from datetime import datetime, timedelta, timezone

import pytest

from agbcli.formatting import (
    CommandError,
    error_message,
    format_cpu,
    format_image_status,
    format_memory,
    format_resources,
    format_timestamp,
    truncate_string,
    validate_cpu_memory_combo,
)


def test_error_message_prints_lines_and_joins_them(capsys):
    err = error_message("[ERROR] first", "", "[TIP] second")
    assert isinstance(err, CommandError)
    assert err.lines == ("[ERROR] first", "", "[TIP] second")
    assert str(err).splitlines() == ["[ERROR] first", "", "[TIP] second"]
    captured = capsys.readouterr()
    assert captured.err.splitlines() == ["[ERROR] first", "", "[TIP] second"]


@pytest.mark.parametrize(
    "status, label",
    [
        ("IMAGE_CREATING", "Creating"),
        ("IMAGE_CREATE_FAILED", "Create Failed"),
        ("IMAGE_AVAILABLE", "Available"),
        ("RESOURCE_DEPLOYING", "Activating"),
        ("RESOURCE_PUBLISHED", "Activated"),
        ("RESOURCE_DELETING", "Deactivating"),
        ("RESOURCE_FAILED", "Activate Failed"),
        ("RESOURCE_CEASED", "Ceased Billing"),
    ],
)
def test_format_image_status_known(status, label):
    assert format_image_status(status) == label


def test_format_image_status_unknown_passes_through():
    assert format_image_status("SOMETHING_ELSE") == "SOMETHING_ELSE"


def test_format_cpu_and_memory_missing():
    assert format_cpu(None) == "-"
    assert format_memory(None) == "-"


def test_format_cpu_and_memory_present():
    assert format_cpu(4) == "4"
    assert format_memory(8).startswith("8")
    assert format_memory(8).endswith("G")


def test_format_resources():
    assert format_resources(None, None) == "-"
    assert format_resources(2, 4) == "2/4G"
    assert format_resources(None, 4) == "-/" + format_memory(4)
    assert format_resources(2, None) == format_cpu(2) + "/-"


def test_truncate_short_string_unchanged():
    assert truncate_string("abc", 25) == "abc"
    assert truncate_string("abcde", 5) == "abcde"


def test_truncate_long_string_adds_ellipsis():
    text = "x" * 10 + "y" * 30
    result = truncate_string(text, 25)
    assert len(result) == 25
    assert result.endswith("...")
    assert result[:-3] == text[:22]


def test_truncate_tiny_limit_has_no_ellipsis():
    result = truncate_string("abcdef", 3)
    assert result == "abcdef"[:3]


def test_format_timestamp_empty():
    assert format_timestamp("") == "-"


@pytest.mark.parametrize(
    "value, moment",
    [
        ("2024-05-01T12:30:00Z", datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)),
        (
            "2024-05-01T12:30:00.123456789+02:00",
            datetime(2024, 5, 1, 12, 30, tzinfo=timezone(timedelta(hours=2))),
        ),
    ],
)
def test_format_timestamp_valid_in_local_time(value, moment):
    expected = moment.astimezone().strftime("%Y-%m-%d %H:%M")
    assert format_timestamp(value) == expected


def test_format_timestamp_invalid_short_returned():
    assert format_timestamp("yesterday") == "yesterday"


def test_format_timestamp_invalid_long_truncated():
    value = "not-a-timestamp-at-all-really-long"
    result = format_timestamp(value)
    assert len(result) == 20
    assert result == truncate_string(value, 20)


@pytest.mark.parametrize("cpu, memory", [(0, 0), (2, 4), (4, 8), (8, 16)])
def test_validate_cpu_memory_accepts(cpu, memory):
    assert validate_cpu_memory_combo(cpu, memory) is None


@pytest.mark.parametrize("cpu, memory", [(2, 0), (0, 4)])
def test_validate_cpu_memory_requires_both(cpu, memory):
    with pytest.raises(CommandError) as info:
        validate_cpu_memory_combo(cpu, memory)
    assert info.value.lines[0] == "[ERROR] Both CPU and memory must be specified together"


@pytest.mark.parametrize("cpu, memory", [(2, 8), (3, 6), (16, 32)])
def test_validate_cpu_memory_rejects_unsupported(cpu, memory):
    with pytest.raises(CommandError) as info:
        validate_cpu_memory_combo(cpu, memory)
    assert info.value.lines[0] == f"[ERROR] Invalid CPU/Memory combination: {cpu}c{memory}g"
    assert "• 8c16g: --cpu 8 --memory 16" in info.value.lines
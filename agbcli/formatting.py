"""Display helpers and argument validation for the image commands."""

from __future__ import annotations

import re
import sys
from datetime import datetime, timezone
from typing import Optional

_STATUS_LABELS = {
    "IMAGE_CREATING": "Creating",
    "IMAGE_CREATE_FAILED": "Create Failed",
    "IMAGE_AVAILABLE": "Available",
    "RESOURCE_DEPLOYING": "Activating",
    "RESOURCE_PUBLISHED": "Activated",
    "RESOURCE_DELETING": "Deactivating",
    "RESOURCE_FAILED": "Activate Failed",
    "RESOURCE_CEASED": "Ceased Billing",
}

_VALID_COMBOS = {2: 4, 4: 8, 8: 16}

_SUPPORTED_COMBOS_HELP = (
    "[TOOL] Supported combinations:",
    "• 2c4g: --cpu 2 --memory 4",
    "• 4c8g: --cpu 4 --memory 8",
    "• 8c16g: --cpu 8 --memory 16",
)

_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def _newline() -> str:
    return "\r\n" if sys.platform.startswith("win") else "\n"


class CommandError(Exception):
    """A user-facing error made of several lines of text."""

    def __init__(self, *lines: str) -> None:
        self.lines = tuple(lines)
        super().__init__(_newline().join(self.lines))


def error_message(*args: str) -> CommandError:
    """Print each line to stderr and return an error holding all of them."""
    for line in args:
        print(line, file=sys.stderr)
    return CommandError(*args)


def format_image_status(status: str) -> str:
    """Return a readable label for a service image status."""
    return _STATUS_LABELS.get(status, status)


def format_cpu(cpu: Optional[int]) -> str:
    """Format a CPU core count, or '-' when unknown."""
    return "-" if cpu is None else str(cpu)


def format_memory(memory: Optional[int]) -> str:
    """Format a memory size in GB, or '-' when unknown."""
    return "-" if memory is None else f"{memory}G"


def format_resources(cpu: Optional[int], memory: Optional[int]) -> str:
    """Format CPU and memory together as 'cpu/memoryG'."""
    if cpu is None and memory is None:
        return "-"
    return f"{format_cpu(cpu)}/{format_memory(memory)}"


def truncate_string(s: str, max_len: int) -> str:
    """Shorten ``s`` to ``max_len`` characters, ending in '...' when cut."""
    if len(s) <= max_len:
        return s
    if max_len <= 3:
        return s[:max_len]
    return s[: max_len - 3] + "..."


def _parse_rfc3339(timestamp: str) -> Optional[datetime]:
    match = _RFC3339.match(timestamp)
    if match is None:
        return None
    frac = match.group("frac") or ""
    tz = match.group("tz")
    text = f"{match.group('date')}T{match.group('time')}"
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    text += "+00:00" if tz == "Z" else tz
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_timestamp(timestamp: str) -> str:
    """Show an RFC 3339 timestamp in local time, or the raw text shortened."""
    if not timestamp:
        return "-"
    parsed = _parse_rfc3339(timestamp)
    if parsed is not None:
        return parsed.astimezone().strftime("%Y-%m-%d %H:%M")
    return truncate_string(timestamp, 20)


def validate_cpu_memory_combo(cpu: int, memory: int) -> None:
    """Raise CommandError unless the CPU/memory pair is supported or both are zero."""
    if cpu == 0 and memory == 0:
        return None
    if (cpu == 0 and memory > 0) or (cpu > 0 and memory == 0):
        raise error_message(
            "[ERROR] Both CPU and memory must be specified together",
            "",
            *_SUPPORTED_COMBOS_HELP,
        )
    if _VALID_COMBOS.get(cpu) != memory:
        raise error_message(
            f"[ERROR] Invalid CPU/Memory combination: {cpu}c{memory}g",
            "",
            *_SUPPORTED_COMBOS_HELP,
        )
    return None


__all__ = [
    "CommandError",
    "error_message",
    "format_image_status",
    "format_cpu",
    "format_memory",
    "format_resources",
    "truncate_string",
    "format_timestamp",
    "validate_cpu_memory_combo",
    "timezone",
]
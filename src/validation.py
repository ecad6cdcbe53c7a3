"""Input validation for wizard and command arguments.

Each validator takes the raw text typed by the operator and returns an error
message, or None when the value is acceptable.
"""

import re
from typing import Optional

MIN_VMID = 100
MAX_VMID = 999999999
MAX_CORES = 128
MIN_MEMORY = 16
MAX_MEMORY = 4 * 1024 * 1024  # 4 TiB in MB
MAX_DISK = 65536

# DNS label: letters, digits, hyphens; no leading/trailing hyphen
NAME_PATTERN = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$')
BRIDGE_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_.-]{0,14}$')


def _int_in_range(value: str, low: int, high: int) -> Optional[int]:
    text = value.strip()
    if not text.isdigit():
        return None
    number = int(text)
    if number < low or number > high:
        return None
    return number


def validate_vmid(value: str) -> Optional[str]:
    if _int_in_range(value, MIN_VMID, MAX_VMID) is None:
        return f"VM ID must be a number between {MIN_VMID} and {MAX_VMID}"
    return None


def validate_name(value: str) -> Optional[str]:
    if not NAME_PATTERN.match(value.strip()):
        return "Name must be 1-63 letters, digits or hyphens, not starting or ending with a hyphen"
    return None


def validate_cores(value: str) -> Optional[str]:
    if _int_in_range(value, 1, MAX_CORES) is None:
        return f"Invalid CPU count (1-{MAX_CORES})"
    return None


def validate_memory(value: str) -> Optional[str]:
    if _int_in_range(value, MIN_MEMORY, MAX_MEMORY) is None:
        return f"Invalid memory size ({MIN_MEMORY}-{MAX_MEMORY} MB)"
    return None


def validate_disk(value: str) -> Optional[str]:
    if _int_in_range(value, 1, MAX_DISK) is None:
        return f"Invalid disk size (1-{MAX_DISK} GB)"
    return None


def validate_bridge(value: str) -> Optional[str]:
    if not BRIDGE_PATTERN.match(value.strip()):
        return "Invalid bridge name"
    return None

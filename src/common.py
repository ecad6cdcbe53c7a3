"""Common utilities and types shared by commands and executors."""

import argparse
import json
import logging
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except Exception as e:
        return -1, '', str(e)


def stream_command(
    cmd: list[str],
    on_line: Callable[[str], None],
    timeout: int = 3600
) -> tuple[int, str]:
    """Run a command, handing each output line to on_line as it arrives.

    stderr is merged into stdout. Returns (returncode, output). The timeout is
    checked between lines.
    """
    logger.debug(f"Streaming: {' '.join(cmd)}")
    lines: list[str] = []
    deadline = time.time() + timeout
    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,  # Line buffered
        )
    except OSError as e:
        return -1, str(e)

    with process:
        try:
            for line in process.stdout:
                line = line.rstrip('\n')
                lines.append(line)
                on_line(line)
                if time.time() > deadline:
                    process.kill()
                    return -1, f'Command timed out after {timeout}s'
            rc = process.wait()
        except Exception:
            process.kill()
            raise
    return rc, '\n'.join(lines)


def run_json(cmd: list[str], timeout: int = 60) -> tuple[int, object, str]:
    """Run a command that prints JSON and return (returncode, data, stderr).

    data is None when the command failed or its output was not JSON.
    """
    rc, out, err = run_command(cmd, timeout=timeout)
    if rc != 0:
        return rc, None, err.strip() or out.strip()
    try:
        return rc, json.loads(out or 'null'), err
    except json.JSONDecodeError as e:
        return -1, None, f"Invalid JSON from {cmd[0]}: {e}"


def format_bytes(size: float) -> str:
    """Human-readable binary size (e.g. 1.5 GB)."""
    if not size:
        return '0 B'
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {units[i]}"


def format_uptime(seconds: int) -> str:
    """Compact uptime: 2d 3h, 4h 10m, 7m or '-' when stopped."""
    if not seconds:
        return '-'
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    if days > 0:
        return f"{days}d {hours}h"
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class CommandParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"Error: {message}", file=sys.stderr)
        sys.exit(1)


def vmid_arg(value: str) -> int:
    """argparse type for guest IDs."""
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError('VMID must be a number') from None

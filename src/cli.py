#!/usr/bin/env python3
"""CLI entry point for pxc.

Commands:
- create: Interactive VM creation wizard
- list: List VMs and containers
- start / stop: Power a guest on or off
- delete: Guarded guest deletion
- iso: ISO image management (list/download/upload/delete)
- config: Settings (show/path/set/set-node)
- packages: Presets (list/show/add/delete)

Global options (accepted anywhere on the command line):
    -v, --verbose   Debug logging
    --simulate      Use the in-memory simulated cluster (also PXC_SIMULATE=1)
    --version       Print version and exit
"""

import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from actions import get_executor

COMMANDS = {
    "create": "Create a new VM with the interactive wizard",
    "list": "List all VMs and containers",
    "start": "Start a VM or container",
    "stop": "Stop a VM or container",
    "delete": "Delete a VM or container",
    "iso": "Manage ISO images (list/download/upload/delete)",
    "config": "Show and edit settings (show/path/set/set-node)",
    "packages": "Manage presets (list/show/add/delete)",
}

ALIASES = {"ls": "list", "rm": "delete", "package": "packages", "preset": "packages",
           "presets": "packages"}

GLOBAL_FLAGS = ("-v", "--verbose", "--simulate", "--version")

logger = logging.getLogger(__name__)


def get_version() -> str:
    try:
        return version("pxc")
    except PackageNotFoundError:
        return "dev"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def print_usage():
    """Print top-level usage."""
    print(f"pxc {get_version()}")
    print()
    print("Usage: pxc [-v] [--simulate] <command> [options]")
    print()
    print("Commands:")
    for name, desc in COMMANDS.items():
        print(f"  {name:<10} {desc}")
    print()
    print("Run 'pxc <command> --help' for command-specific options.")


def split_global_flags(argv: list) -> tuple[set, list]:
    """Separate global flags from the command arguments."""
    flags = {arg for arg in argv if arg in GLOBAL_FLAGS}
    rest = [arg for arg in argv if arg not in GLOBAL_FLAGS]
    return flags, rest


def dispatch(command: str, argv: list, simulate: bool = False) -> int:
    """Dispatch to the command handler.

    Args:
        command: Command name (aliases already resolved)
        argv: Arguments after the command
        simulate: Use the simulated executor

    Returns:
        Exit code
    """
    if command == "config":
        from config_cli import config_main
        return config_main(argv)
    if command == "packages":
        from packages_cli import packages_main
        return packages_main(argv)

    executor = get_executor(simulate)
    if command == "iso":
        from iso_cli import iso_main
        return iso_main(argv, executor)

    import vm_cli
    handlers = {
        "create": vm_cli.create_main,
        "list": vm_cli.list_main,
        "start": vm_cli.start_main,
        "stop": vm_cli.stop_main,
        "delete": vm_cli.delete_main,
    }
    return handlers[command](argv, executor)


def main(argv=None) -> int:
    """CLI entry point."""
    flags, rest = split_global_flags(sys.argv[1:] if argv is None else list(argv))

    if "--version" in flags:
        print(f"pxc {get_version()}")
        return 0

    setup_logging("-v" in flags or "--verbose" in flags)

    if not rest:
        print_usage()
        return 0
    if rest[0] in ("-h", "--help", "help"):
        print_usage()
        return 0

    command = ALIASES.get(rest[0], rest[0])
    if command not in COMMANDS:
        print(f"Error: Unknown command '{rest[0]}'")
        print_usage()
        return 1

    try:
        return dispatch(command, rest[1:], simulate="--simulate" in flags)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0


if __name__ == '__main__':
    sys.exit(main())

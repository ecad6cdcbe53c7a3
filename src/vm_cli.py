"""Guest commands: create, list, start, stop, delete.

Usage:
    pxc create [--preset NAME] [--dry-run]
    pxc list
    pxc start <vmid>
    pxc stop <vmid> [--force]
    pxc delete <vmid> [--dry-run]
"""

import logging
import sys
from typing import Optional

from actions import Executor, ExecutorError, get_executor
from common import CommandParser, format_bytes, format_uptime, vmid_arg
from config import SettingsStore
from config_resolver import ConfigResolver
from lifecycle import DeleteEngine, DeleteSession, State
from topology import TopologyOracle
from tui import run_interactive
from wizard import WizardContext, WizardDriver

logger = logging.getLogger(__name__)


def create_main(argv: list, executor: Optional[Executor] = None,
                store: Optional[SettingsStore] = None) -> int:
    """Run the interactive creation wizard."""
    parser = CommandParser(prog='pxc create', description='Create a new VM with the interactive wizard')
    parser.add_argument('--preset', '--package', '-p', metavar='NAME',
                        help='Preset (package) supplying default values')
    parser.add_argument('--dry-run', action='store_true',
                        help='Walk through the wizard without creating anything')
    args = parser.parse_args(argv)

    executor = executor or get_executor()
    store = store or SettingsStore()

    if args.preset and store.get_preset(args.preset) is None:
        print(f"Error: Preset not found: {args.preset}")
        names = sorted(store.get_presets())
        if names:
            print(f"Available presets: {', '.join(names)}")
        return 0

    ctx = WizardContext(
        executor=executor,
        oracle=TopologyOracle(executor),
        resolver=ConfigResolver(store),
        store=store,
        dry_run=args.dry_run,
    )
    run_interactive(WizardDriver(ctx, preset=args.preset))
    return 0


def format_vm_table(vms: list) -> list[str]:
    """Render guests as the `pxc list` table."""
    vms = sorted(vms, key=lambda vm: vm.vmid)
    name_width = max([16] + [len(vm.name) for vm in vms]) + 2
    node_width = max([8] + [len(vm.node) for vm in vms]) + 2

    lines = [f"{'ID':<6}{'TYPE':<5}{'NAME':<{name_width}}{'NODE':<{node_width}}"
             f"{'STATUS':<10}{'CPUS':<6}{'MEMORY':<22}UPTIME"]
    for vm in vms:
        memory = f"{format_bytes(vm.mem)}/{format_bytes(vm.maxmem)}"
        lines.append(f"{vm.vmid:<6}{'CT' if vm.is_container else 'VM':<5}{vm.name:<{name_width}}"
                     f"{vm.node:<{node_width}}{vm.status:<10}{vm.cpus:<6}{memory:<22}"
                     f"{format_uptime(vm.uptime)}")

    containers = sum(1 for vm in vms if vm.is_container)
    running = sum(1 for vm in vms if vm.running)
    lines.append('')
    lines.append(f"{len(vms)} total ({len(vms) - containers} VMs, {containers} containers) "
                 f"- {running} running")
    return lines


def list_main(argv: list, executor: Optional[Executor] = None) -> int:
    """List all VMs and containers in the cluster."""
    parser = CommandParser(prog='pxc list', description='List all VMs and containers')
    parser.parse_args(argv)
    executor = executor or get_executor()

    try:
        vms = executor.list_vms()
    except ExecutorError as e:
        print(f"Error: {e}")
        return 0

    if not vms:
        print('No VMs or containers found')
        return 0
    for line in format_vm_table(vms):
        print(line)
    return 0


def start_main(argv: list, executor: Optional[Executor] = None) -> int:
    parser = CommandParser(prog='pxc start', description='Start a VM or container')
    parser.add_argument('vmid', type=vmid_arg, help='Guest ID')
    args = parser.parse_args(argv)
    executor = executor or get_executor()

    try:
        info = executor.get_info(args.vmid)
        if info is None:
            print(f"VM/container {args.vmid} not found")
            return 0
        if info.running:
            print(f"{info.label} {args.vmid} is already running")
            return 0
        print(f"Starting {info.label} {args.vmid}...")
        executor.start(args.vmid)
    except ExecutorError as e:
        print(f"Error: Failed to start {args.vmid}: {e}")
        return 0

    print(f"{info.label} {args.vmid} started successfully")
    return 0


def stop_main(argv: list, executor: Optional[Executor] = None) -> int:
    parser = CommandParser(prog='pxc stop', description='Stop a VM or container')
    parser.add_argument('vmid', type=vmid_arg, help='Guest ID')
    parser.add_argument('--force', '-f', action='store_true',
                        help='Hard stop, ignoring locks')
    args = parser.parse_args(argv)
    executor = executor or get_executor()

    try:
        info = executor.get_info(args.vmid)
        if info is None:
            print(f"VM/container {args.vmid} not found")
            return 0
        if info.status == 'stopped':
            print(f"{info.label} {args.vmid} is already stopped")
            return 0
        print(f"Stopping {info.label} {args.vmid}...")
        executor.stop(args.vmid, force=args.force)
    except ExecutorError as e:
        print(f"Error: Failed to stop {args.vmid}: {e}")
        return 0

    print(f"{info.label} {args.vmid} stopped successfully")
    return 0


def delete_main(argv: list, executor: Optional[Executor] = None,
                store: Optional[SettingsStore] = None) -> int:
    """Delete a guest after confirmation and an optional grace period.

    Ends the process on success.
    """
    parser = CommandParser(prog='pxc delete', description='Delete a VM or container')
    parser.add_argument('vmid', type=vmid_arg, help='Guest ID')
    parser.add_argument('--dry-run', action='store_true',
                        help='Go through every confirmation without deleting')
    args = parser.parse_args(argv)

    executor = executor or get_executor()
    store = store or SettingsStore()
    grace_seconds, grace_enabled = store.grace_period()

    session = DeleteSession(
        vmid=args.vmid,
        dry_run=args.dry_run,
        grace_seconds=grace_seconds,
        grace_enabled=grace_enabled,
    )
    engine = DeleteEngine(executor, session)
    run_interactive(engine)

    if engine.session.state == State.SUCCESS:
        sys.exit(0)
    return 0

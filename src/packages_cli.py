"""Preset (package) management.

Usage:
    pxc packages list
    pxc packages show <name>
    pxc packages add <name> [--cores N] [--memory MB] [--disk GB] [--bridge BR]
    pxc packages delete <name>
"""

import logging
from typing import Optional

from common import CommandParser
from config import SettingsStore
from validation import validate_bridge, validate_cores, validate_disk, validate_memory

logger = logging.getLogger(__name__)

# Prompt defaults when neither the command line nor the existing preset has a value
ADD_DEFAULTS = {'cores': 2, 'memory': 2048, 'disk': 32, 'bridge': 'vmbr0'}

SHOW_FIELDS = [
    ('cores', ''),
    ('memory', 'MB'),
    ('disk', 'GB'),
    ('bridge', ''),
    ('node', ''),
    ('iso_storage', ''),
    ('vm_storage', ''),
]


def _preset_lines(preset: dict) -> list[str]:
    return [f"  {key}: {preset[key]}{unit}" for key, unit in SHOW_FIELDS
            if preset.get(key) is not None]


def list_main(argv: list, store: SettingsStore) -> int:
    CommandParser(prog='pxc packages list', description='List presets').parse_args(argv)
    presets = store.get_presets()
    if not presets:
        print('No packages defined')
        print("Run 'pxc packages add <name>' to create one")
        return 0

    print(f"{'NAME':<15}{'CORES':<8}{'MEMORY':<10}{'DISK':<8}BRIDGE")
    for name in sorted(presets):
        preset = presets[name] or {}
        memory = f"{preset['memory']}MB" if preset.get('memory') else '-'
        disk = f"{preset['disk']}GB" if preset.get('disk') else '-'
        print(f"{name:<15}{str(preset.get('cores') or '-'):<8}{memory:<10}{disk:<8}"
              f"{preset.get('bridge') or '-'}")
    print()
    print(f"{len(presets)} package{'s' if len(presets) != 1 else ''}")
    return 0


def show_main(argv: list, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc packages show', description='Show a preset')
    parser.add_argument('name')
    args = parser.parse_args(argv)

    preset = store.get_preset(args.name)
    if preset is None:
        print(f"Error: Package not found: {args.name}")
        return 0
    print(args.name)
    for line in _preset_lines(preset):
        print(line)
    return 0


FIELD_VALIDATORS = {
    'cores': validate_cores,
    'memory': validate_memory,
    'disk': validate_disk,
    'bridge': validate_bridge,
}


def _prompt(label: str, default, validator, cast):
    """Ask until the answer validates. Blank keeps default."""
    while True:
        answer = input(f"{label} [{default}]: ").strip()
        if not answer:
            return default
        error = validator(answer)
        if error:
            print(f"  {error}")
            continue
        return cast(answer)


def add_main(argv: list, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc packages add', description='Create or edit a preset')
    parser.add_argument('name')
    parser.add_argument('--cores', type=int)
    parser.add_argument('--memory', type=int, help='Memory in MB')
    parser.add_argument('--disk', type=int, help='Disk size in GB')
    parser.add_argument('--bridge')
    args = parser.parse_args(argv)

    values = {'cores': args.cores, 'memory': args.memory, 'disk': args.disk, 'bridge': args.bridge}
    for key, validator in FIELD_VALIDATORS.items():
        if values[key] is not None and (error := validator(str(values[key]))):
            print(f"Error: {error}")
            return 0

    if None in (args.cores, args.memory, args.disk):
        existing = store.get_preset(args.name) or {}
        defaults = {key: values[key] if values[key] is not None else existing.get(key) or fallback
                    for key, fallback in ADD_DEFAULTS.items()}
        print(f"Configure package '{args.name}' (blank keeps the value shown)")
        values = {
            'cores': _prompt('CPU cores', defaults['cores'], validate_cores, int),
            'memory': _prompt('Memory (MB)', defaults['memory'], validate_memory, int),
            'disk': _prompt('Disk (GB)', defaults['disk'], validate_disk, int),
            'bridge': _prompt('Bridge', defaults['bridge'], validate_bridge, str),
        }

    try:
        store.set_preset(args.name, values)
    except OSError as e:
        print(f"Error: Could not save package: {e}")
        return 0

    logger.info(f"Saved preset {args.name}")
    print(f'Saved package "{args.name}"')
    for line in _preset_lines(store.get_preset(args.name) or {}):
        print(line)
    return 0


def delete_main(argv: list, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc packages delete', description='Delete a preset')
    parser.add_argument('name')
    args = parser.parse_args(argv)

    if not store.delete_preset(args.name):
        print(f"Error: Package not found: {args.name}")
        return 0
    print(f'Deleted package "{args.name}"')
    return 0


def packages_main(argv: list, store: Optional[SettingsStore] = None) -> int:
    """CLI dispatcher for the 'packages' noun."""
    if not argv or argv[0].startswith('-'):
        print('Usage: pxc packages <action> [options]')
        print()
        print('Actions:')
        print('  list    List presets')
        print('  show    Show one preset')
        print('  add     Create or edit a preset')
        print('  delete  Delete a preset')
        return 1 if not argv else 0

    action = argv[0]
    rest = argv[1:]
    store = store or SettingsStore()

    if action in ('list', 'ls'):
        return list_main(rest, store)
    if action == 'show':
        return show_main(rest, store)
    if action in ('add', 'edit'):
        return add_main(rest, store)
    if action in ('delete', 'rm'):
        return delete_main(rest, store)

    print(f"Error: Unknown packages action '{action}'")
    print('Available actions: list, show, add, delete')
    return 1

"""Settings commands.

Usage:
    pxc config show
    pxc config path
    pxc config set <key> <value>
    pxc config set-node <node> <key> <value>
"""

from typing import Optional

import yaml

from common import CommandParser
from config import ConfigError, SettingsStore

INT_KEYS = ('cores', 'memory', 'disk')


def _coerce(key: str, value: str):
    if key in INT_KEYS:
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{key} must be a number") from None
    return value


def show_main(argv: list, store: SettingsStore) -> int:
    CommandParser(prog='pxc config show', description='Show settings').parse_args(argv)
    doc = store.load()
    print(store.path)
    print()
    if not doc:
        print('No configuration set')
    else:
        print(yaml.safe_dump(doc, default_flow_style=False, sort_keys=False).rstrip())
    print()
    print(f"Edit {store.path} to change settings")
    return 0


def path_main(argv: list, store: SettingsStore) -> int:
    CommandParser(prog='pxc config path', description='Print the settings file path').parse_args(argv)
    print(store.path)
    return 0


def set_main(argv: list, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc config set', description='Set a global default')
    parser.add_argument('key')
    parser.add_argument('value')
    args = parser.parse_args(argv)

    try:
        store.set_default(args.key, _coerce(args.key, args.value))
    except ConfigError as e:
        print(f"Error: {e}")
        return 0
    print(f"defaults.{args.key} = {args.value}")
    return 0


def set_node_main(argv: list, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc config set-node', description='Set a per-node default')
    parser.add_argument('node')
    parser.add_argument('key')
    parser.add_argument('value')
    args = parser.parse_args(argv)

    try:
        store.set_node_override(args.node, args.key, _coerce(args.key, args.value))
    except ConfigError as e:
        print(f"Error: {e}")
        return 0
    print(f"node_overrides.{args.node}.{args.key} = {args.value}")
    return 0


def config_main(argv: list, store: Optional[SettingsStore] = None) -> int:
    """CLI dispatcher for the 'config' noun."""
    if not argv or argv[0].startswith('-'):
        print('Usage: pxc config <action> [options]')
        print()
        print('Actions:')
        print('  show      Show current settings')
        print('  path      Print the settings file path')
        print('  set       Set a global default')
        print('  set-node  Set a per-node default')
        return 1 if not argv else 0

    action = argv[0]
    rest = argv[1:]
    store = store or SettingsStore()

    if action == 'show':
        return show_main(rest, store)
    if action == 'path':
        return path_main(rest, store)
    if action == 'set':
        return set_main(rest, store)
    if action == 'set-node':
        return set_node_main(rest, store)

    print(f"Error: Unknown config action '{action}'")
    print('Available actions: show, path, set, set-node')
    return 1

"""ISO image commands.

Usage:
    pxc iso list
    pxc iso download <url> [--storage S] [--name N] [--node NODE]
    pxc iso upload <file> [--storage S] [--node NODE]
    pxc iso delete <name-or-index>
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from actions import Executor, ExecutorError, Progress, get_executor
from actions.iso import find_iso, probe_iso_url, sort_isos
from common import CommandParser, format_bytes
from config import SettingsStore
from topology import TopologyOracle

logger = logging.getLogger(__name__)


def pick_iso_storage(executor: Executor, store: SettingsStore, explicit: Optional[str] = None,
                     node: Optional[str] = None) -> Optional[str]:
    """Target storage for new ISOs.

    Order: explicit value, defaults.iso_storage, first ISO-capable storage.
    A storage that was not already the saved default is remembered when
    ui.save_preferences is on.
    """
    saved = store.get_default('iso_storage')
    storage = explicit or saved
    if not storage:
        storages = executor.iso_storages(node)
        if not storages:
            return None
        storage = storages[0].name

    if storage != saved and store.should_save_preferences():
        try:
            store.set_default('iso_storage', storage)
            logger.debug(f"Saved iso_storage preference: {storage}")
        except OSError as e:
            logger.warning(f"Could not save ISO storage preference: {e}")
    return storage


def list_main(argv: list, executor: Executor) -> int:
    CommandParser(prog='pxc iso list', description='List ISO images').parse_args(argv)
    try:
        isos = sort_isos(executor.list_isos())
    except ExecutorError as e:
        print(f"Error: {e}")
        return 0

    if not isos:
        print('No ISOs found')
        return 0

    name_width = max([20] + [len(iso.filename) for iso in isos]) + 2
    storage_width = max([10] + [len(iso.storage) for iso in isos]) + 2
    print(f"{'#':<4}{'NAME':<{name_width}}{'STORAGE':<{storage_width}}SIZE")
    for index, iso in enumerate(isos, 1):
        print(f"{index:<4}{iso.filename:<{name_width}}{iso.storage:<{storage_width}}"
              f"{format_bytes(iso.size)}")
    print()
    print(f"{len(isos)} ISO{'s' if len(isos) != 1 else ''}")
    return 0


def _print_progress(progress: Progress) -> None:
    line = f"\r  {progress.percent:3d}%"
    if progress.total:
        line += f"  {format_bytes(progress.downloaded)}/{format_bytes(progress.total)}"
    if progress.speed:
        line += f"  {progress.speed}/s"
    if progress.eta:
        line += f"  ETA {progress.eta}"
    sys.stdout.write(line)
    sys.stdout.flush()


def download_main(argv: list, executor: Executor, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc iso download', description='Download an ISO from a URL')
    parser.add_argument('url', help='ISO URL')
    parser.add_argument('--storage', '-s', help='Target storage')
    parser.add_argument('--name', '-n', help='Filename to save as')
    parser.add_argument('--node', help='Node that performs the download')
    args = parser.parse_args(argv)
    node = args.node or TopologyOracle(executor).preferred_node()

    try:
        storage = pick_iso_storage(executor, store, args.storage, node)
        if not storage:
            print('Error: No ISO storage available')
            return 0

        probe = probe_iso_url(args.url)
        filename = args.name or probe.filename
        print(f"Downloading {filename or args.url}")
        print(f"  -> {storage} on {node}")
        volid = executor.download_iso(args.url, storage, filename=filename,
                                      on_progress=_print_progress, node=node)
    except ExecutorError as e:
        print(f"\nError: {e}")
        return 0

    print()
    print('Download complete')
    print(f"  Volume ID: {volid}")
    return 0


def upload_main(argv: list, executor: Executor, store: SettingsStore) -> int:
    parser = CommandParser(prog='pxc iso upload', description='Upload a local ISO file')
    parser.add_argument('file', help='Path to the ISO file')
    parser.add_argument('--storage', '-s', help='Target storage')
    parser.add_argument('--node', help='Node that receives the file')
    args = parser.parse_args(argv)

    path = Path(args.file).expanduser()
    if not path.is_file():
        print(f"Error: File not found: {args.file}")
        return 0
    node = args.node or TopologyOracle(executor).preferred_node()

    try:
        storage = pick_iso_storage(executor, store, args.storage, node)
        if not storage:
            print('Error: No ISO storage available')
            return 0
        print(f"Uploading {path.name} ({format_bytes(path.stat().st_size)}) -> {storage}")
        volid = executor.upload_iso(str(path), storage, node=node)
    except ExecutorError as e:
        print(f"Error: {e}")
        return 0

    print('Upload complete')
    print(f"  Volume ID: {volid}")
    return 0


def delete_main(argv: list, executor: Executor) -> int:
    parser = CommandParser(prog='pxc iso delete', description='Delete an ISO image')
    parser.add_argument('ref', metavar='name-or-index',
                        help="Filename, volume ID, or index from 'pxc iso list'")
    args = parser.parse_args(argv)

    try:
        iso = find_iso(executor.list_isos(), args.ref)
        if iso is None:
            print(f"Error: ISO not found: {args.ref}")
            return 0
        executor.delete_iso(iso.volid)
    except ExecutorError as e:
        print(f"Error: {e}")
        return 0

    print(f"Deleted {iso.filename} from {iso.storage}")
    return 0


def iso_main(argv: list, executor: Optional[Executor] = None,
             store: Optional[SettingsStore] = None) -> int:
    """CLI dispatcher for the 'iso' noun."""
    if not argv or argv[0].startswith('-'):
        print('Usage: pxc iso <action> [options]')
        print()
        print('Actions:')
        print('  list      List ISO images on all ISO storages')
        print('  download  Download an ISO from a URL')
        print('  upload    Upload a local ISO file')
        print('  delete    Delete an ISO by name or list index')
        return 1 if not argv else 0

    action = argv[0]
    rest = argv[1:]
    executor = executor or get_executor()

    if action == 'list':
        return list_main(rest, executor)
    if action == 'download':
        return download_main(rest, executor, store or SettingsStore())
    if action == 'upload':
        return upload_main(rest, executor, store or SettingsStore())
    if action == 'delete':
        return delete_main(rest, executor)

    print(f"Error: Unknown iso action '{action}'")
    print('Available actions: list, download, upload, delete')
    return 1

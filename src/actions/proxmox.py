"""Proxmox VE executor.

Drives the local hypervisor toolkit:
- pvesh: cluster/node/storage queries, ISO download and upload
- qm / pct: VM and container lifecycle
- pvesm: storage content listing, ISO removal, storage usage
"""

import logging
import re
import socket
from pathlib import Path
from typing import Optional

from actions.types import (
    Bridge,
    ClusterNode,
    Disk,
    ExecutorError,
    IsoFile,
    Progress,
    ProgressCallback,
    Storage,
    VmInfo,
    VmSpec,
)
from common import run_command, run_json, stream_command

logger = logging.getLogger(__name__)

# wget progress lines: "32768K ........ ........ 26% 22.2M 8s"
WGET_PROGRESS = re.compile(r'(\d+)%\s+([\d.]+[KMG]?(?:/s)?)\s+(\d+[smh]?)')
WGET_LENGTH = re.compile(r'Length:\s*(\d+)')

DISK_LINE = re.compile(r'^((?:scsi|virtio|sata|ide)\d+|rootfs|mp\d+):\s*(.*)$')


def parse_wget_progress(line: str, total: int = 0) -> Optional[Progress]:
    """Parse one line of wget output into a Progress sample."""
    match = WGET_PROGRESS.search(line)
    if not match:
        return None
    percent = int(match.group(1))
    return Progress(
        percent=percent,
        speed=match.group(2),
        eta=match.group(3),
        downloaded=(total * percent) // 100,
        total=total,
    )


def parse_disks(config_text: str) -> list[Disk]:
    """Extract disks from `qm config` / `pct config` output.

    Lines look like: scsi0: local-lvm:vm-100-disk-0,size=32G
    CD-ROM drives (media=cdrom) are skipped.
    """
    disks = []
    for line in config_text.splitlines():
        match = DISK_LINE.match(line.strip())
        if not match:
            continue
        slot, value = match.groups()
        if 'media=cdrom' in value:
            continue
        storage = value.split(':', 1)[0].split(',', 1)[0]
        size = 'unknown'
        if size_match := re.search(r'size=([^,]+)', value):
            size = size_match.group(1)
        disks.append(Disk(slot=slot, storage=storage, size=size))
    return disks


class PveExecutor:
    """Executor backed by the Proxmox command-line tools."""

    def __init__(self, timeout: int = 300):
        self.timeout = timeout

    def _run(self, cmd: list[str], what: str, timeout: Optional[int] = None) -> str:
        rc, out, err = run_command(cmd, timeout=timeout or self.timeout)
        if rc != 0:
            raise ExecutorError(f"{what}: {err.strip() or out.strip() or f'exit code {rc}'}")
        return out

    def _json(self, cmd: list[str], what: str) -> object:
        rc, data, err = run_json(cmd, timeout=self.timeout)
        if rc != 0:
            raise ExecutorError(f"{what}: {err}")
        return data

    # Environment

    def is_available(self) -> bool:
        rc, _, _ = run_command(['which', 'qm'], timeout=10)
        return rc == 0

    def local_node(self) -> str:
        try:
            return socket.gethostname().split('.')[0] or 'localhost'
        except OSError:
            return 'localhost'

    def next_vmid(self) -> int:
        out = self._run(['pvesh', 'get', '/cluster/nextid'],
                        'Failed to get next VM ID. Are you on a Proxmox node?')
        try:
            return int(out.strip().strip('"'))
        except ValueError as e:
            raise ExecutorError(f"Unexpected next VM ID: {out.strip()!r}") from e

    def is_vmid_available(self, vmid: int) -> bool:
        return self.get_info(vmid) is None

    # Inventory

    def list_vms(self) -> list[VmInfo]:
        data = self._json(
            ['pvesh', 'get', '/cluster/resources', '--type', 'vm', '--output-format', 'json'],
            'Failed to list VMs',
        )
        return [VmInfo.from_resource(item) for item in data or []]

    def get_info(self, vmid: int) -> Optional[VmInfo]:
        for vm in self.list_vms():
            if vm.vmid == vmid:
                return vm
        return None

    def disk_usage(self, vmid: int) -> list[Disk]:
        """Disks of a guest with storage usage. Best effort, never raises."""
        info = None
        try:
            info = self.get_info(vmid)
        except ExecutorError as e:
            logger.debug(f"Disk usage lookup for {vmid} failed: {e}")
        if not info:
            return []

        tool = 'pct' if info.is_container else 'qm'
        rc, out, err = run_command([tool, 'config', str(vmid)], timeout=30)
        if rc != 0:
            logger.debug(f"{tool} config {vmid} failed: {err}")
            return []

        disks = parse_disks(out)
        for disk in disks:
            rc, out, _ = run_command(['pvesm', 'status', '--storage', disk.storage], timeout=30)
            if rc != 0:
                continue
            # Name Type Status Total Used Available %
            lines = [line for line in out.splitlines()[1:] if line.strip()]
            if lines:
                parts = lines[0].split()
                if len(parts) >= 6:
                    disk.used = _kib(parts[4])
                    disk.available = _kib(parts[5])
        return disks

    def list_nodes(self) -> list[ClusterNode]:
        data = self._json(['pvesh', 'get', '/nodes', '--output-format', 'json'],
                          'Failed to get cluster nodes')
        return [
            ClusterNode(
                name=item.get('node', ''),
                status='online' if item.get('status') == 'online' else 'offline',
                ip=item.get('ip'),
            )
            for item in data or []
        ]

    def _storages(self, content: str, what: str) -> list[Storage]:
        data = self._json(['pvesh', 'get', '/storage', '--output-format', 'json'], what)
        result = []
        for item in data or []:
            kinds = [c.strip() for c in (item.get('content') or '').split(',') if c.strip()]
            if content in kinds:
                result.append(Storage(name=item.get('storage', ''), type=item.get('type', ''),
                                      content=kinds))
        return result

    def storages(self, node: Optional[str] = None) -> list[Storage]:
        return self._storages('images', 'Failed to get storage list')

    def iso_storages(self, node: Optional[str] = None) -> list[Storage]:
        return self._storages('iso', 'Failed to get ISO storage list')

    def bridges(self, node: str) -> list[Bridge]:
        data = self._json(
            ['pvesh', 'get', f'/nodes/{node}/network', '--type', 'bridge', '--output-format', 'json'],
            f'Failed to list bridges on {node}',
        )
        return [Bridge(name=item.get('iface', ''), active=item.get('active') == 1)
                for item in data or []]

    def iso_files(self, storage: str) -> list[IsoFile]:
        rc, out, err = run_command(['pvesm', 'list', storage, '--content', 'iso'], timeout=60)
        if rc != 0:
            logger.debug(f"pvesm list {storage} failed: {err}")
            return []
        isos = []
        # Volid Format Type Size [VMID]
        for line in out.splitlines()[1:]:
            parts = line.split()
            if len(parts) < 4 or not parts[0].endswith('.iso'):
                continue
            volid = parts[0]
            try:
                size = int(parts[3])
            except ValueError:
                size = 0
            isos.append(IsoFile(volid=volid, filename=volid.rsplit('/', 1)[-1],
                                size=size, storage=storage))
        return isos

    def list_isos(self) -> list[IsoFile]:
        isos = []
        for storage in self.iso_storages():
            isos.extend(self.iso_files(storage.name))
        return isos

    # Lifecycle

    def create_vm(self, spec: VmSpec) -> None:
        """Create a VM in four qm calls: create, disk, boot order, ISO."""
        vmid = str(spec.vmid)
        steps = [
            ['qm', 'create', vmid, '--name', spec.name, '--cores', str(spec.cores),
             '--memory', str(spec.memory), '--net0', f'virtio,bridge={spec.bridge}'],
            # slot notation keeps Ceph-backed storages happy
            ['qm', 'set', vmid, '--scsi0', f'{spec.storage}:{spec.disk}'],
            ['qm', 'set', vmid, '--boot', 'order=scsi0'],
        ]
        if spec.iso_volid:
            steps.append(['qm', 'set', vmid, '--ide2', f'{spec.iso_volid},media=cdrom'])

        if spec.node and spec.node != self.local_node():
            # qm only acts on the local node; route through the API for remote nodes
            steps = [_qm_to_pvesh(cmd, spec.node) for cmd in steps]

        logger.info(f"Creating VM {vmid} ({spec.name}) on {spec.node or self.local_node()}")
        for cmd in steps:
            self._run(cmd, f"{cmd[0]} {cmd[1]} failed")

    def _require(self, vmid: int) -> VmInfo:
        info = self.get_info(vmid)
        if not info:
            raise ExecutorError(f"VM/container {vmid} not found")
        return info

    def start(self, vmid: int) -> None:
        info = self._require(vmid)
        tool = 'pct' if info.is_container else 'qm'
        self._run([tool, 'start', str(vmid)], f"Failed to start {info.label.lower()} {vmid}")

    def stop(self, vmid: int, force: bool = False) -> None:
        info = self._require(vmid)
        tool = 'pct' if info.is_container else 'qm'
        cmd = [tool, 'stop', str(vmid)]
        if force and not info.is_container:
            cmd.append('--skiplock')
        self._run(cmd, f"Failed to stop {info.label.lower()} {vmid}")

    def destroy(self, vmid: int, purge: bool = True) -> None:
        info = self._require(vmid)
        tool = 'pct' if info.is_container else 'qm'
        cmd = [tool, 'destroy', str(vmid)]
        if purge:
            cmd.append('--purge')
        self._run(cmd, f"Failed to delete {info.label.lower()} {vmid}")

    # ISO management

    def download_iso(self, url: str, storage: str, filename: Optional[str] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     node: Optional[str] = None) -> str:
        node = node or self.local_node()
        fname = filename or url.rstrip('/').rsplit('/', 1)[-1] or 'download.iso'
        total = 0

        def on_line(line: str) -> None:
            nonlocal total
            if length := WGET_LENGTH.search(line):
                total = int(length.group(1))
            if on_progress and (sample := parse_wget_progress(line, total)):
                on_progress(sample)

        rc, out = stream_command(
            ['pvesh', 'create', f'/nodes/{node}/storage/{storage}/download-url',
             '--url', url, '--content', 'iso', '--filename', fname],
            on_line,
            timeout=3600,
        )
        if rc != 0:
            lines = out.strip().splitlines()
            raise ExecutorError(f"Failed to download ISO: {lines[-1] if lines else rc}")
        return f"{storage}:iso/{fname}"

    def upload_iso(self, path: str, storage: str, node: Optional[str] = None) -> str:
        node = node or self.local_node()
        fname = Path(path).name
        self._run(
            ['pvesh', 'create', f'/nodes/{node}/storage/{storage}/upload',
             '--content', 'iso', '--filename', path],
            'Failed to upload ISO',
            timeout=3600,
        )
        return f"{storage}:iso/{fname}"

    def delete_iso(self, volid: str) -> None:
        self._run(['pvesm', 'free', volid], 'Failed to delete ISO')


def _kib(value: str) -> str:
    """Format a pvesm KiB column as a human size."""
    try:
        kib = int(value)
    except ValueError:
        return value
    for unit in ('K', 'M', 'G', 'T'):
        if kib < 1024 or unit == 'T':
            return f"{kib}{unit}"
        kib //= 1024
    return value


def _qm_to_pvesh(cmd: list[str], node: str) -> list[str]:
    """Translate a `qm create|set <vmid> --opt val ...` call into pvesh for a remote node."""
    verb, vmid, options = cmd[1], cmd[2], cmd[3:]
    if verb == 'create':
        return ['pvesh', 'create', f'/nodes/{node}/qemu', '--vmid', vmid] + options
    return ['pvesh', 'set', f'/nodes/{node}/qemu/{vmid}/config'] + options

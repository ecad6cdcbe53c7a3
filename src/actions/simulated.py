"""Deterministic in-memory executor.

Selected with PXC_SIMULATE=1 or --simulate. Mirrors a three-node cluster
(node3 offline) with a fixed guest inventory, and records every call in
`calls` so tests can assert which operations ran.
"""

import copy
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

GIB = 1024 ** 3

DEFAULT_NODES = [
    ClusterNode(name='node1', status='online', ip='192.168.1.101'),
    ClusterNode(name='node2', status='online', ip='192.168.1.102'),
    ClusterNode(name='node3', status='offline', ip='192.168.1.103'),
]

DEFAULT_VMS = [
    VmInfo(vmid=100, name='web-server', kind='qemu', node='node1', status='running',
           cpus=2, mem=2 * GIB, maxmem=4 * GIB, uptime=86400,
           disks=[Disk(slot='scsi0', storage='local-lvm', size='32G', used='12G', available='20G')]),
    VmInfo(vmid=101, name='db-server', kind='qemu', node='node2', status='running',
           cpus=4, mem=4 * GIB, maxmem=8 * GIB, uptime=172800,
           disks=[Disk(slot='scsi0', storage='ceph-pool', size='64G', used='40G', available='24G')]),
    VmInfo(vmid=102, name='container-1', kind='lxc', node='node1', status='running',
           cpus=2, mem=1 * GIB, maxmem=2 * GIB, uptime=259200,
           disks=[Disk(slot='rootfs', storage='local-lvm', size='8G', used='3G', available='5G')]),
    VmInfo(vmid=103, name='dev-box', kind='qemu', node='node3', status='stopped',
           cpus=2, mem=0, maxmem=2 * GIB, uptime=0,
           disks=[Disk(slot='scsi0', storage='local-lvm', size='20G')]),
]

DEFAULT_ISOS = [
    IsoFile(volid='local:iso/alpine-3.18.iso', filename='alpine-3.18.iso', size=157286400, storage='local'),
    IsoFile(volid='local:iso/debian-12.iso', filename='debian-12.iso', size=629145600, storage='local'),
    IsoFile(volid='nfs-iso:iso/ubuntu-24.04.iso', filename='ubuntu-24.04.iso', size=5771362304,
            storage='nfs-iso'),
]


class SimulatedExecutor:
    """Executor that mutates an in-memory inventory instead of a cluster.

    Args:
        nodes: Cluster members (default: node1/node2 online, node3 offline)
        vms: Guest inventory
        isos: ISO inventory
        local: Name reported as the local host
        fail: Map of operation name -> error message to raise
    """

    def __init__(self, nodes: Optional[list] = None, vms: Optional[list] = None,
                 isos: Optional[list] = None, local: str = 'node1',
                 fail: Optional[dict] = None):
        self.nodes = copy.deepcopy(DEFAULT_NODES if nodes is None else nodes)
        self.vms = {vm.vmid: vm for vm in copy.deepcopy(DEFAULT_VMS if vms is None else vms)}
        self.isos = copy.deepcopy(DEFAULT_ISOS if isos is None else isos)
        self.local = local
        self.fail = dict(fail or {})
        self.calls: list[tuple] = []

    def _record(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        if op in self.fail:
            raise ExecutorError(self.fail[op])

    def called(self, op: str) -> bool:
        return any(call[0] == op for call in self.calls)

    def is_available(self) -> bool:
        return True

    def local_node(self) -> str:
        return self.local

    def next_vmid(self) -> int:
        self._record('next_vmid')
        vmid = 100
        while vmid in self.vms:
            vmid += 1
        return vmid

    def is_vmid_available(self, vmid: int) -> bool:
        return vmid not in self.vms

    def create_vm(self, spec: VmSpec) -> None:
        self._record('create_vm', spec)
        if spec.vmid in self.vms:
            raise ExecutorError(f"VM {spec.vmid} already exists")
        self.vms[spec.vmid] = VmInfo(
            vmid=spec.vmid, name=spec.name, kind='qemu', node=spec.node or self.local,
            status='stopped', cpus=spec.cores, maxmem=spec.memory * 1024 * 1024,
            disks=[Disk(slot='scsi0', storage=spec.storage, size=f'{spec.disk}G')],
        )

    def _require(self, vmid: int) -> VmInfo:
        if vmid not in self.vms:
            raise ExecutorError(f"VM/container {vmid} not found")
        return self.vms[vmid]

    def start(self, vmid: int) -> None:
        self._record('start', vmid)
        self._require(vmid).status = 'running'

    def stop(self, vmid: int, force: bool = False) -> None:
        self._record('stop', vmid, force)
        vm = self._require(vmid)
        vm.status = 'stopped'
        vm.uptime = 0
        vm.mem = 0

    def destroy(self, vmid: int, purge: bool = True) -> None:
        self._record('destroy', vmid, purge)
        vm = self._require(vmid)
        if vm.running:
            raise ExecutorError(f"{vm.label} {vmid} is running")
        del self.vms[vmid]

    def get_info(self, vmid: int) -> Optional[VmInfo]:
        self._record('get_info', vmid)
        vm = self.vms.get(vmid)
        return copy.deepcopy(vm) if vm else None

    def disk_usage(self, vmid: int) -> list[Disk]:
        vm = self.vms.get(vmid)
        return copy.deepcopy(vm.disks) if vm else []

    def list_vms(self) -> list[VmInfo]:
        self._record('list_vms')
        return [copy.deepcopy(vm) for _, vm in sorted(self.vms.items())]

    def list_nodes(self) -> list[ClusterNode]:
        self._record('list_nodes')
        return copy.deepcopy(self.nodes)

    def storages(self, node: Optional[str] = None) -> list[Storage]:
        shared = 'ceph-pool'
        extra = 'shared-storage' if node == 'node2' else 'nfs-storage'
        return [
            Storage(name='local-lvm', type='lvmthin', content=['images']),
            Storage(name=shared, type='rbd', content=['images']),
            Storage(name=extra, type='nfs', content=['images', 'iso']),
        ]

    def iso_storages(self, node: Optional[str] = None) -> list[Storage]:
        return [
            Storage(name='local', type='dir', content=['iso', 'images']),
            Storage(name='nfs-iso', type='nfs', content=['iso']),
        ]

    def bridges(self, node: str) -> list[Bridge]:
        second = 'vmbr2' if node == 'node2' else 'vmbr1'
        return [Bridge(name='vmbr0'), Bridge(name=second)]

    def iso_files(self, storage: str) -> list[IsoFile]:
        return [copy.deepcopy(iso) for iso in self.isos if iso.storage == storage]

    def list_isos(self) -> list[IsoFile]:
        return copy.deepcopy(self.isos)

    def download_iso(self, url: str, storage: str, filename: Optional[str] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     node: Optional[str] = None) -> str:
        self._record('download_iso', url, storage, filename, node)
        fname = filename or url.rstrip('/').rsplit('/', 1)[-1] or 'download.iso'
        total = 256 * 1024 * 1024
        if on_progress:
            for percent in range(0, 101, 20):
                on_progress(Progress(percent=percent, speed='15.2M', eta=f"{(100 - percent) // 10}s",
                                     downloaded=total * percent // 100, total=total))
        volid = f"{storage}:iso/{fname}"
        self.isos.append(IsoFile(volid=volid, filename=fname, size=total, storage=storage))
        return volid

    def upload_iso(self, path: str, storage: str, node: Optional[str] = None) -> str:
        self._record('upload_iso', path, storage, node)
        fname = Path(path).name
        volid = f"{storage}:iso/{fname}"
        self.isos.append(IsoFile(volid=volid, filename=fname, size=0, storage=storage))
        return volid

    def delete_iso(self, volid: str) -> None:
        self._record('delete_iso', volid)
        before = len(self.isos)
        self.isos = [iso for iso in self.isos if iso.volid != volid]
        if len(self.isos) == before:
            raise ExecutorError(f"Failed to delete ISO: {volid} not found")

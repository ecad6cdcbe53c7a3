"""Value types exchanged with the operation executors."""

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

# Storage types reachable from every cluster member
SHARED_STORAGE_TYPES = ('nfs', 'cifs', 'rbd', 'cephfs', 'glusterfs', 'iscsi', 'pbs')


class ExecutorError(Exception):
    """A hypervisor toolkit call failed."""


@dataclass
class ClusterNode:
    """Cluster member as reported by /nodes."""
    name: str
    status: str = 'offline'
    ip: Optional[str] = None

    @property
    def online(self) -> bool:
        return self.status == 'online'


@dataclass
class Disk:
    """One disk of a guest, with storage usage when known."""
    slot: str
    storage: str
    size: str = 'unknown'
    used: Optional[str] = None
    available: Optional[str] = None


@dataclass
class VmInfo:
    """VM (qemu) or container (lxc) as listed in /cluster/resources.

    Attributes:
        vmid: Guest ID
        name: Guest name
        kind: 'qemu' or 'lxc'
        node: Node currently hosting the guest
        status: running, stopped or paused
        cpus: Configured CPU count
        mem: Memory in use (bytes)
        maxmem: Configured memory (bytes)
        uptime: Seconds since start, 0 when stopped
    """
    vmid: int
    name: str
    kind: str = 'qemu'
    node: str = ''
    status: str = 'stopped'
    cpus: int = 0
    mem: int = 0
    maxmem: int = 0
    uptime: int = 0
    disks: list[Disk] = field(default_factory=list)

    @property
    def is_container(self) -> bool:
        return self.kind == 'lxc'

    @property
    def running(self) -> bool:
        return self.status == 'running'

    @property
    def label(self) -> str:
        return 'Container' if self.is_container else 'VM'

    @classmethod
    def from_resource(cls, data: dict) -> 'VmInfo':
        vmid = int(data['vmid'])
        return cls(
            vmid=vmid,
            name=data.get('name') or f"VM {vmid}",
            kind=data.get('type', 'qemu'),
            node=data.get('node', ''),
            status=data.get('status', 'stopped'),
            cpus=int(data.get('maxcpu') or 0),
            mem=int(data.get('mem') or 0),
            maxmem=int(data.get('maxmem') or 0),
            uptime=int(data.get('uptime') or 0),
        )


@dataclass
class Storage:
    """Storage pool definition."""
    name: str
    type: str
    content: list[str] = field(default_factory=list)

    @property
    def shared(self) -> bool:
        return self.type in SHARED_STORAGE_TYPES


@dataclass
class Bridge:
    """Linux bridge on a node."""
    name: str
    active: bool = True


@dataclass
class IsoFile:
    """ISO image in a storage."""
    volid: str
    filename: str
    size: int
    storage: str


@dataclass(frozen=True)
class VmSpec:
    """Submitted creation request (frozen draft)."""
    vmid: int
    name: str
    cores: int
    memory: int
    disk: int
    storage: str
    bridge: str
    node: Optional[str] = None
    iso_volid: Optional[str] = None


@dataclass
class Progress:
    """Download progress sample."""
    percent: int
    speed: str = ''
    eta: str = ''
    downloaded: int = 0
    total: int = 0


ProgressCallback = Callable[[Progress], None]


class Executor(Protocol):
    """Operations against the hypervisor toolkit.

    Every method raises ExecutorError on failure unless documented otherwise.
    """

    def is_available(self) -> bool: ...
    def local_node(self) -> str: ...
    def next_vmid(self) -> int: ...
    def is_vmid_available(self, vmid: int) -> bool: ...
    def create_vm(self, spec: VmSpec) -> None: ...
    def start(self, vmid: int) -> None: ...
    def stop(self, vmid: int, force: bool = False) -> None: ...
    def destroy(self, vmid: int, purge: bool = True) -> None: ...
    def get_info(self, vmid: int) -> Optional[VmInfo]: ...
    def disk_usage(self, vmid: int) -> list[Disk]: ...
    def list_vms(self) -> list[VmInfo]: ...
    def list_nodes(self) -> list[ClusterNode]: ...
    def storages(self, node: Optional[str] = None) -> list[Storage]: ...
    def iso_storages(self, node: Optional[str] = None) -> list[Storage]: ...
    def bridges(self, node: str) -> list[Bridge]: ...
    def iso_files(self, storage: str) -> list[IsoFile]: ...
    def list_isos(self) -> list[IsoFile]: ...

    def download_iso(self, url: str, storage: str, filename: Optional[str] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     node: Optional[str] = None) -> str: ...

    def upload_iso(self, path: str, storage: str, node: Optional[str] = None) -> str: ...
    def delete_iso(self, volid: str) -> None: ...

"""Operation executors for the hypervisor toolkit."""

import os

from actions.proxmox import PveExecutor
from actions.simulated import SimulatedExecutor
from actions.types import (
    Bridge,
    ClusterNode,
    Disk,
    Executor,
    ExecutorError,
    IsoFile,
    Progress,
    Storage,
    VmInfo,
    VmSpec,
)


def get_executor(simulate: bool = False) -> Executor:
    """Return the simulated executor when requested (flag or PXC_SIMULATE=1)."""
    if simulate or os.environ.get('PXC_SIMULATE') == '1':
        return SimulatedExecutor()
    return PveExecutor()


__all__ = [
    'Bridge',
    'ClusterNode',
    'Disk',
    'Executor',
    'ExecutorError',
    'IsoFile',
    'Progress',
    'PveExecutor',
    'SimulatedExecutor',
    'Storage',
    'VmInfo',
    'VmSpec',
    'get_executor',
]

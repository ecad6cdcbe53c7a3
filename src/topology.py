"""Cluster topology oracle.

Picks the node to use when the operator did not name one:
1. Single member (or membership query failed): the local host
2. Local host listed and online: the local host
3. First member reporting online
4. First listed member (may be unreachable; callers surface the failure)

Query failures are treated as "not clustered" and are not retried.
"""

import logging
from typing import Optional

from actions.types import ClusterNode, Executor, ExecutorError

logger = logging.getLogger(__name__)


class TopologyOracle:
    """Derives cluster facts from the executor's membership listing.

    The listing is fetched at most once per oracle; one oracle lives for one
    command invocation.
    """

    def __init__(self, executor: Executor, local: Optional[str] = None):
        self.executor = executor
        self._local = local
        self._members: Optional[list[ClusterNode]] = None

    def local_node(self) -> str:
        if self._local is None:
            self._local = self.executor.local_node() or 'localhost'
        return self._local

    def members(self) -> list[ClusterNode]:
        """Cluster members in listing order; empty when the query failed."""
        if self._members is None:
            try:
                self._members = self.executor.list_nodes()
            except ExecutorError as e:
                logger.debug(f"Membership query failed, assuming single node: {e}")
                self._members = []
        return self._members

    def is_cluster(self) -> bool:
        return len(self.members()) > 1

    def online_nodes(self) -> list[ClusterNode]:
        return [node for node in self.members() if node.online]

    def preferred_node(self) -> str:
        """Node for operations that were not given one."""
        local = self.local_node()
        members = self.members()
        if len(members) <= 1:
            return local

        for node in members:
            if node.name == local and node.online:
                return local

        for node in members:
            if node.online:
                logger.debug(f"Local host {local} not an online member, using {node.name}")
                return node.name

        logger.warning(f"No online cluster members, falling back to {members[0].name}")
        return members[0].name

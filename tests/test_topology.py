"""Tests for the cluster topology oracle."""

from unittest.mock import MagicMock

from actions.types import ClusterNode, ExecutorError
from topology import TopologyOracle


def _executor(nodes=None, local='n1', error=None):
    executor = MagicMock()
    executor.local_node.return_value = local
    if error:
        executor.list_nodes.side_effect = ExecutorError(error)
    else:
        executor.list_nodes.return_value = nodes or []
    return executor


class TestPreferredNode:
    """Test the node auto-selection rule."""

    def test_single_member_is_local(self):
        executor = _executor([ClusterNode('pve', 'online')], local='pve')
        assert TopologyOracle(executor).preferred_node() == 'pve'

    def test_single_member_ignores_status(self):
        """A standalone host is used even if it reports itself offline."""
        executor = _executor([ClusterNode('other', 'offline')], local='pve')
        assert TopologyOracle(executor).preferred_node() == 'pve'

    def test_local_online_member(self):
        executor = _executor([ClusterNode('n1', 'online'), ClusterNode('n2', 'online')])
        assert TopologyOracle(executor).preferred_node() == 'n1'

    def test_local_offline_picks_first_online(self):
        executor = _executor([
            ClusterNode('n1', 'offline'),
            ClusterNode('n2', 'online'),
            ClusterNode('n3', 'online'),
        ])
        assert TopologyOracle(executor).preferred_node() == 'n2'

    def test_local_not_a_member_picks_first_online(self):
        executor = _executor([ClusterNode('a', 'offline'), ClusterNode('b', 'online')], local='x')
        assert TopologyOracle(executor).preferred_node() == 'b'

    def test_all_offline_picks_first_listed(self):
        executor = _executor([ClusterNode('n2', 'offline'), ClusterNode('n3', 'offline')])
        assert TopologyOracle(executor).preferred_node() == 'n2'

    def test_query_failure_is_local(self):
        executor = _executor(error='pvesh: not found')
        assert TopologyOracle(executor).preferred_node() == 'n1'

    def test_explicit_local_name(self):
        executor = _executor([ClusterNode('n1', 'online'), ClusterNode('n2', 'online')], local='n1')
        oracle = TopologyOracle(executor, local='n2')
        assert oracle.preferred_node() == 'n2'
        executor.local_node.assert_not_called()


class TestMembership:
    """Test derived cluster facts."""

    def test_is_cluster(self, sim):
        assert TopologyOracle(sim).is_cluster() is True

    def test_single_node_not_cluster(self, single_node):
        assert TopologyOracle(single_node).is_cluster() is False

    def test_failure_not_cluster(self):
        assert TopologyOracle(_executor(error='boom')).is_cluster() is False

    def test_online_nodes(self, sim):
        names = [n.name for n in TopologyOracle(sim).online_nodes()]
        assert names == ['node1', 'node2']

    def test_membership_fetched_once(self, sim):
        oracle = TopologyOracle(sim)
        oracle.is_cluster()
        oracle.online_nodes()
        oracle.preferred_node()
        assert sum(1 for call in sim.calls if call[0] == 'list_nodes') == 1

    def test_failure_not_retried(self):
        executor = _executor(error='boom')
        oracle = TopologyOracle(executor)
        oracle.members()
        oracle.members()
        assert executor.list_nodes.call_count == 1

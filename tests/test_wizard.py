"""Tests for the creation wizard.

The wizard is driven with key events only, the same way the curses
front-end drives it.
"""

import pytest

from actions.simulated import SimulatedExecutor
from actions.types import ClusterNode
from config_resolver import ConfigResolver
from keys import DOWN, ENTER, ESCAPE, TICK, typed
from topology import TopologyOracle
from wizard import Draft, Step, WizardContext, WizardDriver
from wizard.driver import TRANSITIONS


def make_wizard(executor, store, preset=None, dry_run=False):
    ctx = WizardContext(
        executor=executor,
        oracle=TopologyOracle(executor),
        resolver=ConfigResolver(store),
        store=store,
        dry_run=dry_run,
    )
    wizard = WizardDriver(ctx, preset=preset)
    wizard.start()
    return wizard


def enter_text(wizard, text):
    for key in typed(text) + [ENTER]:
        wizard.dispatch(key)


def walk_to(wizard, step, name='web-01'):
    """Accept defaults until the wizard reaches step."""
    wizard.dispatch(ENTER)  # welcome
    enter_text(wizard, '')  # vmid default
    enter_text(wizard, name)
    while wizard.step != step and not wizard.done:
        wizard.dispatch(ENTER)
    assert wizard.step == step


class TestTransitions:
    """Test the step table."""

    def test_linear_order(self):
        order = [Step.WELCOME]
        while order[-1] in TRANSITIONS:
            order.append(TRANSITIONS[order[-1]])
        assert order == [
            Step.WELCOME, Step.IDENTITY, Step.NODE_SELECTION, Step.COMPUTE, Step.STORAGE,
            Step.NETWORK, Step.ISO, Step.SUMMARY, Step.EXECUTE, Step.SUCCESS,
        ]


class TestSingleNode:
    """Standalone hosts skip node selection."""

    def test_full_run_creates_vm(self, single_node, store):
        wizard = make_wizard(single_node, store)
        assert wizard.step == Step.WELCOME

        wizard.dispatch(ENTER)
        assert wizard.step == Step.IDENTITY
        enter_text(wizard, '')          # accept suggested vmid
        enter_text(wizard, 'web-01')
        assert wizard.step == Step.COMPUTE
        assert wizard.draft.node == 'pve'

        enter_text(wizard, '4')
        enter_text(wizard, '')          # memory fallback
        enter_text(wizard, '40')
        assert wizard.step == Step.STORAGE
        wizard.dispatch(ENTER)
        assert wizard.step == Step.NETWORK
        wizard.dispatch(ENTER)
        assert wizard.step == Step.ISO
        wizard.dispatch(ENTER)          # iso storage
        wizard.dispatch(ENTER)          # (No ISO)
        assert wizard.step == Step.SUMMARY
        wizard.dispatch(ENTER)

        assert wizard.step == Step.SUCCESS
        spec = single_node.calls[-1][1]
        assert spec.vmid == 104
        assert spec.name == 'web-01'
        assert spec.node == 'pve'
        assert spec.cores == 4
        assert spec.memory == 2048
        assert spec.disk == 40
        assert spec.storage == 'local-lvm'
        assert spec.bridge == 'vmbr0'
        assert spec.iso_volid is None
        assert 104 in single_node.vms


class TestCluster:
    """Clusters get a node-selection step."""

    def test_node_selection_shown(self, sim, store):
        wizard = make_wizard(sim, store)
        wizard.dispatch(ENTER)
        enter_text(wizard, '')
        enter_text(wizard, 'web-01')
        assert wizard.step == Step.NODE_SELECTION
        lines = wizard.render()
        assert any('node1 (current)' in line for line in lines)
        assert not any('node3' in line for line in lines)

    def test_selected_node_drives_later_stages(self, sim, store):
        wizard = make_wizard(sim, store)
        walk_to(wizard, Step.NODE_SELECTION)
        wizard.dispatch(DOWN)
        wizard.dispatch(ENTER)
        assert wizard.draft.node == 'node2'

        while wizard.step != Step.NETWORK:
            wizard.dispatch(ENTER)
        assert any('vmbr2' in line for line in wizard.render())

    def test_preset_node_is_initial_selection(self, sim, write_settings):
        store = write_settings({'presets': {'remote': {'node': 'node2', 'cores': 6}}})
        wizard = make_wizard(sim, store, preset='remote')
        walk_to(wizard, Step.NODE_SELECTION)
        wizard.dispatch(ENTER)
        assert wizard.draft.node == 'node2'
        assert wizard.step == Step.COMPUTE
        assert '(default: 6)' in wizard.render()[-1]

    def test_explicit_selection_beats_preset_node(self, sim, write_settings):
        store = write_settings({'presets': {'remote': {'node': 'node2'}}})
        wizard = make_wizard(sim, store, preset='remote')
        walk_to(wizard, Step.NODE_SELECTION)
        wizard.dispatch(DOWN)           # node2 -> node1 (wraps)
        wizard.dispatch(ENTER)
        assert wizard.draft.node == 'node1'
        walk_to_end = [ENTER] * 20
        for key in walk_to_end:
            wizard.dispatch(key)
        assert wizard.step == Step.SUCCESS
        assert sim.calls[-1][1].node == 'node1'

    def test_node_override_applies_to_chosen_node(self, sim, write_settings):
        store = write_settings({
            'defaults': {'cores': 2},
            'node_overrides': {'node2': {'cores': 12}},
        })
        wizard = make_wizard(sim, store)
        walk_to(wizard, Step.NODE_SELECTION)
        wizard.dispatch(DOWN)
        wizard.dispatch(ENTER)
        assert '(default: 12)' in wizard.render()[-1]

    def test_no_online_nodes_is_error(self, store):
        executor = SimulatedExecutor(nodes=[ClusterNode('a'), ClusterNode('b')], local='a')
        wizard = make_wizard(executor, store)
        walk_to(wizard, Step.ERROR)
        assert 'No online nodes' in wizard.render()[0]


class TestValidation:
    """Invalid input never advances."""

    def test_invalid_vmid_stays(self, sim, store):
        wizard = make_wizard(sim, store)
        wizard.dispatch(ENTER)
        enter_text(wizard, '42')
        assert wizard.step == Step.IDENTITY
        assert any('between 100' in line for line in wizard.render())

    def test_vmid_in_use_stays(self, sim, store):
        wizard = make_wizard(sim, store)
        wizard.dispatch(ENTER)
        enter_text(wizard, '100')
        assert wizard.step == Step.IDENTITY
        assert any('already in use' in line for line in wizard.render())

    @pytest.mark.parametrize('name', ['-bad', 'bad-', 'under_score', 'has space'])
    def test_invalid_name_stays(self, sim, store, name):
        wizard = make_wizard(sim, store)
        wizard.dispatch(ENTER)
        enter_text(wizard, '')
        enter_text(wizard, name)
        assert wizard.step == Step.IDENTITY
        assert wizard.draft.vmid is None

    def test_invalid_cores_stays(self, single_node, store):
        wizard = make_wizard(single_node, store)
        walk_to(wizard, Step.COMPUTE)
        enter_text(wizard, '0')
        assert wizard.step == Step.COMPUTE
        enter_text(wizard, '129')
        assert wizard.step == Step.COMPUTE
        assert any('1-128' in line for line in wizard.render())


class TestCancelAndErrors:
    """Test terminal error and cancel states."""

    def test_escape_on_summary_cancels(self, single_node, store):
        wizard = make_wizard(single_node, store)
        walk_to(wizard, Step.SUMMARY)
        wizard.dispatch(ESCAPE)
        assert wizard.step == Step.CANCELLED
        assert not single_node.called('create_vm')

    def test_escape_mid_wizard_cancels(self, sim, store):
        wizard = make_wizard(sim, store)
        walk_to(wizard, Step.NODE_SELECTION)
        wizard.dispatch(ESCAPE)
        assert wizard.step == Step.CANCELLED
        assert wizard.done

    def test_execute_failure_is_error(self, store):
        executor = SimulatedExecutor(nodes=[ClusterNode('pve', 'online')], local='pve',
                                     fail={'create_vm': 'storage full'})
        wizard = make_wizard(executor, store)
        walk_to(wizard, Step.SUMMARY)
        wizard.dispatch(ENTER)
        assert wizard.step == Step.ERROR
        assert wizard.render() == ['Error: VM creation failed on pve: storage full']

    def test_tools_missing_is_error(self, single_node, store, monkeypatch):
        monkeypatch.setattr(single_node, 'is_available', lambda: False)
        wizard = make_wizard(single_node, store)
        assert wizard.step == Step.ERROR

    def test_events_after_done_ignored(self, single_node, store):
        wizard = make_wizard(single_node, store)
        wizard.dispatch(ESCAPE)
        wizard.dispatch(ENTER)
        assert wizard.step == Step.CANCELLED

    def test_ticks_ignored(self, single_node, store):
        wizard = make_wizard(single_node, store)
        wizard.dispatch(TICK)
        assert wizard.step == Step.WELCOME


class TestDryRun:
    """Dry run never creates."""

    def test_dry_run_succeeds_without_create(self, single_node, store):
        wizard = make_wizard(single_node, store, dry_run=True)
        walk_to(wizard, Step.SUMMARY)
        wizard.dispatch(ENTER)
        assert wizard.step == Step.SUCCESS
        assert not single_node.called('create_vm')
        assert 'would be created' in wizard.render()[0]


class TestIsoPreference:
    """ISO storage choice is remembered."""

    def test_chosen_storage_saved(self, single_node, store):
        wizard = make_wizard(single_node, store)
        walk_to(wizard, Step.ISO)
        wizard.dispatch(DOWN)           # nfs-iso
        wizard.dispatch(ENTER)
        assert store.get_default('iso_storage') == 'nfs-iso'
        wizard.dispatch(DOWN)           # ubuntu
        wizard.dispatch(ENTER)
        assert wizard.draft.iso_volid == 'nfs-iso:iso/ubuntu-24.04.iso'

    def test_saved_storage_skips_question(self, single_node, write_settings):
        store = write_settings({'defaults': {'iso_storage': 'local'}})
        wizard = make_wizard(single_node, store)
        walk_to(wizard, Step.ISO)
        assert 'from local' in wizard.render()[0]

    def test_not_saved_when_preferences_off(self, single_node, write_settings):
        store = write_settings({'ui': {'save_preferences': False}})
        wizard = make_wizard(single_node, store)
        walk_to(wizard, Step.ISO)
        wizard.dispatch(ENTER)
        assert store.get_default('iso_storage') is None


class TestDraft:
    """Test the draft value object."""

    def test_merge_returns_new_draft(self):
        draft = Draft()
        merged = draft.merge({'cores': 2})
        assert draft.cores is None
        assert merged.cores == 2

    def test_merge_rejects_unknown(self):
        with pytest.raises(ValueError):
            Draft().merge({'gpu': 1})

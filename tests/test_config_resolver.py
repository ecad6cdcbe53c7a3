#!/usr/bin/env python3
"""Tests for ConfigResolver.

Tests verify:
1. Precedence: preset > node override > global default > unset
2. Partial layers only overwrite the fields they define
3. Default preset selection via defaults.preset
4. Resolution never writes the store and is repeatable
5. Hard-coded fallbacks
"""

import pytest

from config_resolver import (
    FALLBACK_BRIDGE,
    FALLBACK_CORES,
    FALLBACK_DISK,
    FALLBACK_MEMORY,
    ConfigResolver,
    EffectiveParams,
)


@pytest.fixture
def layered(write_settings):
    """Settings with all three layers populated."""
    return write_settings({
        'defaults': {'cores': 2, 'memory': 2048, 'bridge': 'vmbr0', 'vm_storage': 'local-lvm'},
        'node_overrides': {'pve2': {'cores': 4, 'bridge': 'vmbr2'}},
        'presets': {
            'big': {'cores': 8},
            'pinned': {'node': 'pve3', 'memory': 8192},
        },
    })


class TestPrecedence:
    """Test layer ordering."""

    def test_preset_over_defaults(self, write_settings):
        """A preset field wins; other fields inherit; missing stay unset."""
        store = write_settings({
            'defaults': {'cores': 2, 'memory': 2048},
            'presets': {'big': {'cores': 8}},
        })
        params = ConfigResolver(store).resolve(None, 'big')
        assert params.cores == 8
        assert params.memory == 2048
        assert params.disk is None
        assert params.preset == 'big'

    def test_node_override_over_defaults(self, layered):
        params = ConfigResolver(layered).resolve('pve2')
        assert params.cores == 4
        assert params.bridge == 'vmbr2'
        assert params.memory == 2048

    def test_preset_over_node_override(self, layered):
        params = ConfigResolver(layered).resolve('pve2', 'big')
        assert params.cores == 8
        assert params.bridge == 'vmbr2'

    def test_node_layer_skipped_without_node(self, layered):
        params = ConfigResolver(layered).resolve()
        assert params.cores == 2
        assert params.bridge == 'vmbr0'

    def test_unknown_node_has_no_override(self, layered):
        params = ConfigResolver(layered).resolve('pve9')
        assert params.cores == 2

    @pytest.mark.parametrize('field, value', [
        ('cores', 16), ('memory', 4096), ('disk', 100), ('bridge', 'vmbr9'),
        ('iso_storage', 'iso-a'), ('vm_storage', 'ceph'),
    ])
    def test_every_field_follows_precedence(self, write_settings, field, value):
        store = write_settings({
            'defaults': {field: 'd'},
            'node_overrides': {'n1': {field: 'o'}},
            'presets': {'p': {field: value}},
        })
        resolver = ConfigResolver(store)
        assert getattr(resolver.resolve(), field) == 'd'
        assert getattr(resolver.resolve('n1'), field) == 'o'
        assert getattr(resolver.resolve('n1', 'p'), field) == value

    def test_preset_can_set_node(self, layered):
        params = ConfigResolver(layered).resolve(None, 'pinned')
        assert params.node == 'pve3'
        assert params.memory == 8192


class TestPresetSelection:
    """Test which preset is applied."""

    def test_default_preset_applied(self, write_settings):
        store = write_settings({
            'defaults': {'cores': 2, 'preset': 'big'},
            'presets': {'big': {'cores': 8}},
        })
        params = ConfigResolver(store).resolve()
        assert params.cores == 8
        assert params.preset == 'big'

    def test_explicit_preset_beats_default_preset(self, write_settings):
        store = write_settings({
            'defaults': {'preset': 'big'},
            'presets': {'big': {'cores': 8}, 'tiny': {'cores': 1}},
        })
        assert ConfigResolver(store).resolve(None, 'tiny').cores == 1

    def test_missing_preset_ignored(self, layered):
        params = ConfigResolver(layered).resolve(None, 'nope')
        assert params.cores == 2
        assert params.preset is None

    def test_list_presets_sorted(self, layered):
        assert ConfigResolver(layered).list_presets() == ['big', 'pinned']


class TestPurity:
    """Test that resolution only reads."""

    def test_idempotent(self, layered):
        resolver = ConfigResolver(layered)
        assert resolver.resolve('pve2', 'big') == resolver.resolve('pve2', 'big')

    def test_does_not_write_store(self, layered):
        before = layered.path.read_text()
        mtime = layered.path.stat().st_mtime_ns
        ConfigResolver(layered).resolve('pve2', 'big')
        assert layered.path.read_text() == before
        assert layered.path.stat().st_mtime_ns == mtime

    def test_missing_document(self, store):
        """No settings file resolves to all-unset without creating one."""
        params = ConfigResolver(store).resolve('pve1')
        assert params == EffectiveParams()
        assert not store.path.exists()


class TestFallbacks:
    """Test hard-coded fallbacks."""

    def test_fallbacks_fill_unset(self):
        params = EffectiveParams().with_fallbacks()
        assert params.cores == FALLBACK_CORES
        assert params.memory == FALLBACK_MEMORY
        assert params.disk == FALLBACK_DISK
        assert params.bridge == FALLBACK_BRIDGE

    def test_fallbacks_keep_set_values(self):
        params = EffectiveParams(cores=6, bridge='vmbr3').with_fallbacks()
        assert params.cores == 6
        assert params.bridge == 'vmbr3'

    def test_to_dict(self):
        assert EffectiveParams(cores=1).to_dict()['cores'] == 1


class TestMalformedSettings:
    """Hand-edited documents with wrongly shaped sections still resolve."""

    @pytest.mark.parametrize('doc', [
        {'defaults': [1, 2]},
        {'defaults': 'small'},
        {'node_overrides': ['pve1']},
        {'node_overrides': {'pve1': 'vmbr1'}},
        {'presets': ['big'], 'defaults': {'preset': 'big'}},
        {'presets': {'big': 8}, 'defaults': {'preset': 'big'}},
        {'defaults': {'preset': ['big']}, 'presets': {'big': {'cores': 8}}},
    ])
    def test_resolves_to_unset(self, write_settings, doc):
        params = ConfigResolver(write_settings(doc)).resolve('pve1', None)
        assert params == EffectiveParams()
        assert params.with_fallbacks().cores == FALLBACK_CORES

    def test_valid_layers_survive_bad_sibling(self, write_settings):
        store = write_settings({
            'defaults': {'memory': 4096},
            'node_overrides': 'pve1',
            'presets': {'big': {'cores': 8}},
        })
        params = ConfigResolver(store).resolve('pve1', 'big')
        assert params.memory == 4096
        assert params.cores == 8

"""Shared pytest fixtures for pxc tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the default settings location at a temp dir for every test."""
    config_dir = tmp_path / 'pxc-config'
    monkeypatch.setenv('PXC_CONFIG_DIR', str(config_dir))
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))
    monkeypatch.delenv('PXC_SIMULATE', raising=False)
    return config_dir


@pytest.fixture
def store(tmp_path):
    """SettingsStore backed by files under tmp_path."""
    from config import SettingsStore
    return SettingsStore(path=tmp_path / 'config.yaml', legacy_path=tmp_path / 'legacy.json')


@pytest.fixture
def write_settings(store):
    """Write a settings document as YAML and return the store."""
    import yaml

    def _write(doc: dict):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(yaml.safe_dump(doc))
        return store
    return _write


@pytest.fixture
def sim():
    """SimulatedExecutor with the default three-node inventory."""
    from actions.simulated import SimulatedExecutor
    return SimulatedExecutor()


@pytest.fixture
def single_node():
    """SimulatedExecutor for a standalone host."""
    from actions.simulated import SimulatedExecutor
    from actions.types import ClusterNode
    return SimulatedExecutor(nodes=[ClusterNode(name='pve', status='online')], local='pve')


class FakeClock:
    """Manually advanced clock for timer tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()

"""Layered resolution of creation defaults.

Resolution order (lowest to highest precedence):
1. defaults (global)
2. node_overrides[node], when a node is given
3. presets[name], where name is the explicit preset or defaults.preset

Only fields a layer actually defines overwrite lower layers, so an absent
field inherits. A preset may also set `node`. Resolution reads the store and
never writes it; missing documents or keys produce unset (None) fields, and
callers apply the FALLBACK_* constants.
"""

from dataclasses import dataclass, fields, replace
from typing import Optional

from config import FIELDS, SettingsStore

FALLBACK_CORES = 2
FALLBACK_MEMORY = 2048
FALLBACK_DISK = 20
FALLBACK_BRIDGE = 'vmbr0'


@dataclass(frozen=True)
class EffectiveParams:
    """Merged field values for one operation. None means unset."""
    cores: Optional[int] = None
    memory: Optional[int] = None
    disk: Optional[int] = None
    bridge: Optional[str] = None
    iso_storage: Optional[str] = None
    vm_storage: Optional[str] = None
    node: Optional[str] = None
    preset: Optional[str] = None

    def with_fallbacks(self) -> 'EffectiveParams':
        """Copy with hard-coded fallbacks for unset compute/network fields."""
        return replace(
            self,
            cores=self.cores if self.cores is not None else FALLBACK_CORES,
            memory=self.memory if self.memory is not None else FALLBACK_MEMORY,
            disk=self.disk if self.disk is not None else FALLBACK_DISK,
            bridge=self.bridge or FALLBACK_BRIDGE,
        )

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _overlay(base: dict, layer: Optional[dict]) -> None:
    if not isinstance(layer, dict):
        return
    for key in FIELDS:
        if layer.get(key) is not None:
            base[key] = layer[key]


class ConfigResolver:
    """Resolves the settings document into EffectiveParams."""

    def __init__(self, store: SettingsStore):
        self.store = store

    def resolve(self, node: Optional[str] = None, preset: Optional[str] = None) -> EffectiveParams:
        """Merge defaults, node override and preset.

        Args:
            node: Node whose overrides apply (None skips the node layer)
            preset: Preset name; falls back to defaults.preset

        Returns:
            EffectiveParams with unset fields left as None
        """
        doc = self.store.load()
        defaults = doc.get('defaults') or {}

        merged: dict = {}
        _overlay(merged, defaults)

        if node:
            _overlay(merged, (doc.get('node_overrides') or {}).get(node))

        preset_name = preset or defaults.get('preset')
        presets = doc.get('presets') or {}
        applied = None
        if isinstance(preset_name, str) and preset_name in presets:
            _overlay(merged, presets[preset_name])
            applied = preset_name

        return EffectiveParams(preset=applied, **merged)

    def list_presets(self) -> list[str]:
        """List available preset names."""
        return sorted(self.store.get_presets().keys())

"""Settings store for pxc.

Settings live in a single YAML document:
- defaults: global field defaults plus the name of the default preset
- presets: named bundles of fields (shown as "packages" on the command line)
- node_overrides: per-node field defaults
- ui: interaction flags (save_preferences)
- safety: delete grace period settings

Location resolution:
1. $PXC_CONFIG_DIR/config.yaml
2. ~/.config/pxc/config.yaml

The document is read on every access and rewritten wholesale on every write.
A legacy pve-cli JSON file is migrated once, the first time the store is read
and no current-format file exists.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Fields shared by defaults, presets and node overrides
FIELDS = ('cores', 'memory', 'disk', 'bridge', 'iso_storage', 'vm_storage', 'node')

# Keys accepted under defaults (fields plus the default preset name)
DEFAULT_KEYS = FIELDS + ('preset',)

# Node overrides cannot redirect to another node
NODE_OVERRIDE_KEYS = ('cores', 'memory', 'disk', 'bridge', 'iso_storage', 'vm_storage')

DEFAULT_GRACE_PERIOD = 5


class ConfigError(Exception):
    """Configuration error."""


class InvalidKeyError(ConfigError):
    """Unknown settings key."""

    def __init__(self, key: str, valid_keys: tuple):
        self.key = key
        self.valid_keys = valid_keys
        super().__init__(f"Invalid key: {key}. Valid keys: {', '.join(valid_keys)}")


def get_config_dir() -> Path:
    """Discover the settings directory.

    Resolution order:
    1. $PXC_CONFIG_DIR environment variable
    2. ~/.config/pxc/
    """
    if env_path := os.environ.get('PXC_CONFIG_DIR'):
        return Path(env_path)
    return Path.home() / '.config' / 'pxc'


def get_legacy_config_file() -> Path:
    """Path of the pve-cli JSON settings file (migration input only)."""
    return Path.home() / '.config' / 'pve-cli' / 'config.json'


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


SECTIONS = ('defaults', 'presets', 'node_overrides', 'ui', 'safety')

# Sections whose values are themselves field mappings
NESTED_SECTIONS = ('presets', 'node_overrides')


def _sanitize(doc: dict, source: Path) -> dict:
    """Drop hand-edited sections that are not mappings."""
    for section in SECTIONS:
        value = doc.get(section)
        if value is None or isinstance(value, dict):
            continue
        logger.warning(f"Ignoring {section} in {source}: expected a mapping, "
                       f"got {type(value).__name__}")
        del doc[section]
    for section in NESTED_SECTIONS:
        entries = doc.get(section) or {}
        for name in [n for n, v in entries.items() if v is not None and not isinstance(v, dict)]:
            logger.warning(f"Ignoring {section}.{name} in {source}: expected a mapping")
            del entries[name]
    return doc


def _translate_legacy(legacy: dict) -> dict:
    """Convert a pve-cli JSON document to the current layout."""
    doc: dict = {
        'defaults': {},
        'ui': {'save_preferences': True},
    }
    if legacy.get('isoStorage'):
        doc['defaults']['iso_storage'] = legacy['isoStorage']
    return doc


class SettingsStore:
    """Handle on the settings document.

    Every getter reloads from disk, every setter loads, modifies and saves the
    whole document. Saves go through a temporary file and os.replace so a
    concurrent reader sees either the old or the new document. Concurrent
    writers are not coordinated; the last write wins.
    """

    def __init__(self, path: Optional[Path] = None, legacy_path: Optional[Path] = None):
        self.path = Path(path) if path else get_config_dir() / 'config.yaml'
        self.legacy_path = Path(legacy_path) if legacy_path else get_legacy_config_file()

    def load(self) -> dict:
        """Load the settings document.

        Missing or unreadable documents yield an empty dict. Runs the legacy
        migration when the current-format file does not exist yet.
        """
        if self.path.exists():
            try:
                return _sanitize(_parse_yaml(self.path), self.path)
            except (OSError, yaml.YAMLError, ConfigError) as e:
                logger.warning(f"Ignoring unreadable settings {self.path}: {e}")
                return {}

        migrated = self._migrate_legacy()
        if migrated is not None:
            return migrated
        return {}

    def _migrate_legacy(self) -> Optional[dict]:
        if not self.legacy_path.exists():
            return None
        try:
            with open(self.legacy_path, encoding="utf-8") as f:
                legacy = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Skipping legacy migration from {self.legacy_path}: {e}")
            return None
        if not isinstance(legacy, dict):
            return None

        doc = _translate_legacy(legacy)
        try:
            self.save(doc)
        except OSError as e:
            logger.warning(f"Could not persist migrated settings to {self.path}: {e}")
        else:
            logger.info(f"Migrated legacy settings from {self.legacy_path} to {self.path}")
        return doc

    def save(self, doc: dict) -> None:
        """Write the whole document, creating the directory on first write."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix='.config-', suffix='.yaml', dir=self.path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved settings to {self.path}")

    # Defaults

    def get_default(self, key: str) -> Any:
        return (self.load().get('defaults') or {}).get(key)

    def set_default(self, key: str, value: Any) -> None:
        if key not in DEFAULT_KEYS:
            raise InvalidKeyError(key, DEFAULT_KEYS)
        doc = self.load()
        if not doc.get('defaults'):
            doc['defaults'] = {}
        doc['defaults'][key] = value
        self.save(doc)

    # Presets

    def get_presets(self) -> dict:
        return dict(self.load().get('presets') or {})

    def get_preset(self, name: str) -> Optional[dict]:
        preset = (self.load().get('presets') or {}).get(name)
        return dict(preset) if preset is not None else None

    def set_preset(self, name: str, fields: dict) -> None:
        """Create or replace a preset. None values are dropped."""
        unknown = [k for k in fields if k not in FIELDS]
        if unknown:
            raise InvalidKeyError(unknown[0], FIELDS)
        doc = self.load()
        if not doc.get('presets'):
            doc['presets'] = {}
        doc['presets'][name] = {k: v for k, v in fields.items() if v is not None}
        self.save(doc)

    def delete_preset(self, name: str) -> bool:
        """Delete a preset. Returns False when it did not exist."""
        doc = self.load()
        presets = doc.get('presets') or {}
        if name not in presets:
            return False
        del presets[name]
        doc['presets'] = presets
        self.save(doc)
        return True

    # Node overrides

    def get_node_override(self, node: str) -> dict:
        return dict((self.load().get('node_overrides') or {}).get(node) or {})

    def set_node_override(self, node: str, key: str, value: Any) -> None:
        """Set one per-node default.

        Raises:
            InvalidKeyError: If key is not an overridable field
        """
        if key not in NODE_OVERRIDE_KEYS:
            raise InvalidKeyError(key, NODE_OVERRIDE_KEYS)
        doc = self.load()
        if not doc.get('node_overrides'):
            doc['node_overrides'] = {}
        if not doc['node_overrides'].get(node):
            doc['node_overrides'][node] = {}
        doc['node_overrides'][node][key] = value
        self.save(doc)

    # Flags

    def should_save_preferences(self) -> bool:
        return (self.load().get('ui') or {}).get('save_preferences') is not False

    def grace_period(self) -> tuple[int, bool]:
        """Return (seconds, enabled) for the delete grace period."""
        safety = self.load().get('safety') or {}
        try:
            seconds = int(safety.get('grace_period', DEFAULT_GRACE_PERIOD))
        except (TypeError, ValueError):
            logger.warning(f"Invalid safety.grace_period {safety.get('grace_period')!r}, "
                           f"using {DEFAULT_GRACE_PERIOD}s")
            seconds = DEFAULT_GRACE_PERIOD
        enabled = safety.get('grace_period_enabled', True) is not False and seconds > 0
        return max(seconds, 0), enabled

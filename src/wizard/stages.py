"""Wizard stages.

A stage loads what it needs when entered, validates its own input, and
reports one of four outcomes to the driver: Stay, Advance(updates), Fail or
Cancel. Stages never route; the driver decides what comes next.
"""

import logging
from dataclasses import dataclass, field

from actions.types import ExecutorError
from keys import Key, SelectList, TextInput
from validation import (
    validate_bridge,
    validate_cores,
    validate_disk,
    validate_memory,
    validate_name,
    validate_vmid,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stay:
    """Remain in the current stage."""


@dataclass(frozen=True)
class Advance:
    """Merge updates into the draft and move on."""
    updates: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Fail:
    """Terminal error carrying a message."""
    message: str


@dataclass(frozen=True)
class Cancel:
    """Operator abandoned the wizard."""


STAY = Stay()


class Stage:
    """Base stage: Escape cancels, everything else is ignored."""
    title = ''

    def enter(self, ctx, draft):
        """Load stage data. May return an outcome to skip interaction."""
        return STAY

    def handle(self, key: Key):
        if key.kind == 'escape':
            return Cancel()
        return STAY

    def render(self, draft) -> list[str]:
        return [self.title]


class FieldSequence(Stage):
    """Stage asking a fixed series of validated text fields.

    An empty entry accepts the field's default.
    """

    def __init__(self):
        self.fields: list[tuple] = []  # (key, prompt, default, validator, cast)
        self.position = 0
        self.values: dict = {}
        self.input = TextInput(max_length=16)
        self.error = ''

    def check(self, key: str, value):
        """Extra validation hook, returns an error message or None."""
        return None

    def handle(self, key: Key):
        if key.kind == 'escape':
            return Cancel()
        if key.kind != 'enter':
            self.input = self.input.handle(key)
            return STAY

        name, _, default, validator, cast = self.fields[self.position]
        text = self.input.value.strip() or str(default if default is not None else '')
        error = validator(text)
        if not error:
            error = self.check(name, cast(text))
        if error:
            self.error = error
            return STAY

        self.values[name] = cast(text)
        self.error = ''
        self.input = TextInput(max_length=self.input.max_length)
        self.position += 1
        if self.position < len(self.fields):
            return STAY
        return Advance(dict(self.values))

    def render(self, draft) -> list[str]:
        lines = [self.title]
        for name, prompt, _, _, _ in self.fields[:self.position]:
            lines.append(f"  {prompt}: {self.values[name]}")
        _, prompt, default, _, _ = self.fields[self.position]
        hint = f" (default: {default})" if default is not None else ''
        lines.append(self.input.render(f"{prompt}{hint} "))
        if self.error:
            lines.append(f"! {self.error}")
        return lines


class WelcomeStage(Stage):
    title = 'Create a new VM'

    def enter(self, ctx, draft):
        if not ctx.executor.is_available():
            return Fail("Proxmox tools (qm) not found. Run pxc on a Proxmox VE node.")
        return STAY

    def handle(self, key: Key):
        if key.kind == 'enter':
            return Advance({})
        return super().handle(key)

    def render(self, draft) -> list[str]:
        lines = [self.title, '']
        if draft.preset:
            lines.append(f"Using preset: {draft.preset}")
        lines.append('Press Enter to begin, Escape to quit')
        return lines


class IdentityStage(FieldSequence):
    title = 'Identity'

    def enter(self, ctx, draft):
        self.executor = ctx.executor
        try:
            suggested = ctx.executor.next_vmid()
        except ExecutorError as e:
            return Fail(str(e))
        self.fields = [
            ('vmid', 'VM ID', suggested, validate_vmid, int),
            ('name', 'Name', None, validate_name, str.strip),
        ]
        self.input = TextInput(max_length=63)
        return STAY

    def check(self, key: str, value):
        if key == 'vmid':
            try:
                if not self.executor.is_vmid_available(value):
                    return f"VM ID {value} is already in use"
            except ExecutorError as e:
                logger.debug(f"VM ID availability check failed: {e}")
        return None


class NodeSelectionStage(Stage):
    title = 'Select target node'

    def enter(self, ctx, draft):
        online = ctx.oracle.online_nodes()
        if not online:
            return Fail('No online nodes available in cluster')
        local = ctx.oracle.local_node()
        default = ctx.resolver.resolve(None, draft.preset).node
        initial = default if any(n.name == default for n in online) else local
        self.default = default
        self.local = local
        self.list = SelectList.of(
            [(f"{n.name}{' (current)' if n.name == local else ''}", n.name) for n in online],
            initial=initial,
        )
        return STAY

    def handle(self, key: Key):
        if key.kind == 'enter':
            return Advance({'node': self.list.selected})
        if key.kind == 'escape':
            return Cancel()
        self.list = self.list.handle(key)
        return STAY

    def render(self, draft) -> list[str]:
        lines = [self.title]
        if self.default:
            lines.append(f"  default: {self.default}")
        lines.append(f"  current node: {self.local}")
        return lines + self.list.render()


class ComputeStage(FieldSequence):
    title = 'Compute'

    def enter(self, ctx, draft):
        params = ctx.resolver.resolve(draft.node, draft.preset).with_fallbacks()
        self.fields = [
            ('cores', 'CPU cores', params.cores, validate_cores, int),
            ('memory', 'Memory (MB)', params.memory, validate_memory, int),
            ('disk', 'Disk size (GB)', params.disk, validate_disk, int),
        ]
        return STAY


def _storage_label(storage, node: str) -> str:
    location = 'Shared' if storage.shared else f"Local ({node})"
    return f"{storage.name} ({storage.type}) - {location}"


class StorageStage(Stage):
    title = 'VM storage'

    def enter(self, ctx, draft):
        self.node = draft.node
        try:
            storages = ctx.executor.storages(draft.node)
        except ExecutorError as e:
            return Fail(f"Failed to load storage pools from {draft.node}: {e}")
        if not storages:
            return Fail(f"No VM storage available on {draft.node}")
        params = ctx.resolver.resolve(draft.node, draft.preset)
        self.list = SelectList.of([(_storage_label(s, draft.node), s.name) for s in storages],
                                  initial=params.vm_storage)
        return STAY

    def handle(self, key: Key):
        if key.kind == 'enter':
            return Advance({'storage': self.list.selected})
        if key.kind == 'escape':
            return Cancel()
        self.list = self.list.handle(key)
        return STAY

    def render(self, draft) -> list[str]:
        return [f"Select VM storage on {self.node}",
                '  shared storage is reachable from every node'] + self.list.render()


class NetworkStage(Stage):
    title = 'Network'

    def enter(self, ctx, draft):
        self.node = draft.node
        self.list = None
        self.input = TextInput(max_length=15)
        self.error = ''
        params = ctx.resolver.resolve(draft.node, draft.preset).with_fallbacks()
        self.default = params.bridge
        try:
            bridges = ctx.executor.bridges(draft.node)
        except ExecutorError as e:
            logger.debug(f"Bridge detection on {draft.node} failed: {e}")
            bridges = []
        if bridges:
            self.list = SelectList.of(
                [(f"{b.name}{'' if b.active else ' (inactive)'}", b.name) for b in bridges],
                initial=params.bridge,
            )
        return STAY

    def handle(self, key: Key):
        if key.kind == 'escape':
            return Cancel()
        if self.list is not None:
            if key.kind == 'enter':
                return Advance({'bridge': self.list.selected})
            self.list = self.list.handle(key)
            return STAY

        if key.kind != 'enter':
            self.input = self.input.handle(key)
            return STAY
        bridge = self.input.value.strip()
        if error := validate_bridge(bridge):
            self.error = error
            return STAY
        return Advance({'bridge': bridge})

    def render(self, draft) -> list[str]:
        if self.list is not None:
            return [f"Select network bridge on {self.node}"] + self.list.render()
        lines = [f"Bridge detection failed on {self.node}, enter a bridge name",
                 self.input.render(f"Bridge (e.g. {self.default}) ")]
        if self.error:
            lines.append(f"! {self.error}")
        return lines


NO_ISO = ('(No ISO)', '')


class IsoStage(Stage):
    """Pick the ISO storage (remembered as a preference), then the ISO."""
    title = 'Installation media'

    def enter(self, ctx, draft):
        self.ctx = ctx
        self.node = draft.node
        self.storage = None
        self.phase = 'iso'
        self.list = SelectList.of([NO_ISO])

        try:
            storages = ctx.executor.iso_storages(draft.node)
        except ExecutorError as e:
            logger.debug(f"ISO storage listing on {draft.node} failed: {e}")
            storages = []
        if not storages:
            return STAY

        preferred = ctx.resolver.resolve(draft.node, draft.preset).iso_storage
        if preferred and any(s.name == preferred for s in storages):
            self._load_isos(preferred)
        elif len(storages) == 1:
            self._remember(storages[0].name)
            self._load_isos(storages[0].name)
        else:
            self.phase = 'storage'
            self.list = SelectList.of([(_storage_label(s, draft.node), s.name) for s in storages])
        return STAY

    def _remember(self, storage: str) -> None:
        store = self.ctx.store
        if store.should_save_preferences() and store.get_default('iso_storage') != storage:
            try:
                store.set_default('iso_storage', storage)
            except OSError as e:
                logger.warning(f"Could not save ISO storage preference: {e}")

    def _load_isos(self, storage: str) -> None:
        self.storage = storage
        self.phase = 'iso'
        try:
            isos = self.ctx.executor.iso_files(storage)
        except ExecutorError as e:
            logger.debug(f"ISO listing on {storage} failed: {e}")
            isos = []
        options = [NO_ISO] + [(f"{iso.filename} ({iso.storage})", iso.volid) for iso in isos]
        self.list = SelectList.of(options)

    def handle(self, key: Key):
        if key.kind == 'escape':
            return Cancel()
        if key.kind != 'enter':
            self.list = self.list.handle(key)
            return STAY
        if self.phase == 'storage':
            chosen = self.list.selected
            self._remember(chosen)
            self._load_isos(chosen)
            return STAY
        return Advance({'iso_volid': self.list.selected or None})

    def render(self, draft) -> list[str]:
        if self.phase == 'storage':
            return [f"Select ISO storage on {self.node}"] + self.list.render()
        header = 'Select installation ISO (optional)'
        if self.storage:
            header += f" from {self.storage}"
        return [header] + self.list.render()


class SummaryStage(Stage):
    title = 'Summary'

    def enter(self, ctx, draft):
        self.dry_run = ctx.dry_run
        return STAY

    def handle(self, key: Key):
        if key.kind == 'enter':
            return Advance({})
        return super().handle(key)

    def render(self, draft) -> list[str]:
        lines = [self.title]
        for label, value in draft.summary():
            lines.append(f"  {label:<8} {value}")
        action = 'preview' if self.dry_run else 'create'
        lines += ['', f"Press Enter to {action}, Escape to cancel"]
        return lines


class ExecuteStage(Stage):
    title = 'Creating VM'

    def enter(self, ctx, draft):
        spec = draft.to_spec()
        if ctx.dry_run:
            logger.info(f"Dry run: would create {spec}")
            return Advance({})
        try:
            ctx.executor.create_vm(spec)
        except ExecutorError as e:
            where = f" on {spec.node}" if spec.node else ''
            return Fail(f"VM creation failed{where}: {e}")
        return Advance({})

"""Creation wizard driver.

The driver owns the draft and the step routing. Steps follow TRANSITIONS in
order; a step listed in OPTIONAL is entered only when its predicate holds,
otherwise SKIP_FILL supplies its value and the walk continues. Stages report
outcomes and never choose the next step themselves.
"""

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Optional

from actions.types import Executor, VmSpec
from config import SettingsStore
from config_resolver import ConfigResolver
from keys import Key
from topology import TopologyOracle
from wizard.stages import (
    Advance,
    Cancel,
    ComputeStage,
    ExecuteStage,
    Fail,
    IdentityStage,
    IsoStage,
    NetworkStage,
    NodeSelectionStage,
    StorageStage,
    SummaryStage,
    WelcomeStage,
)

logger = logging.getLogger(__name__)


class Step(Enum):
    WELCOME = 'welcome'
    IDENTITY = 'identity'
    NODE_SELECTION = 'node_selection'
    COMPUTE = 'compute'
    STORAGE = 'storage'
    NETWORK = 'network'
    ISO = 'iso'
    SUMMARY = 'summary'
    EXECUTE = 'execute'
    SUCCESS = 'success'
    ERROR = 'error'
    CANCELLED = 'cancelled'


TRANSITIONS = {
    Step.WELCOME: Step.IDENTITY,
    Step.IDENTITY: Step.NODE_SELECTION,
    Step.NODE_SELECTION: Step.COMPUTE,
    Step.COMPUTE: Step.STORAGE,
    Step.STORAGE: Step.NETWORK,
    Step.NETWORK: Step.ISO,
    Step.ISO: Step.SUMMARY,
    Step.SUMMARY: Step.EXECUTE,
    Step.EXECUTE: Step.SUCCESS,
}

TERMINAL = (Step.SUCCESS, Step.ERROR, Step.CANCELLED)

STAGES = {
    Step.WELCOME: WelcomeStage,
    Step.IDENTITY: IdentityStage,
    Step.NODE_SELECTION: NodeSelectionStage,
    Step.COMPUTE: ComputeStage,
    Step.STORAGE: StorageStage,
    Step.NETWORK: NetworkStage,
    Step.ISO: IsoStage,
    Step.SUMMARY: SummaryStage,
    Step.EXECUTE: ExecuteStage,
}

OPTIONAL = {
    Step.NODE_SELECTION: lambda ctx: ctx.oracle.is_cluster(),
}

SKIP_FILL = {
    Step.NODE_SELECTION: lambda ctx: {'node': ctx.oracle.preferred_node()},
}


@dataclass(frozen=True)
class Draft:
    """Fields collected so far. Unset fields are None."""
    preset: Optional[str] = None
    vmid: Optional[int] = None
    name: Optional[str] = None
    node: Optional[str] = None
    cores: Optional[int] = None
    memory: Optional[int] = None
    disk: Optional[int] = None
    storage: Optional[str] = None
    bridge: Optional[str] = None
    iso_volid: Optional[str] = None

    def merge(self, updates: dict) -> 'Draft':
        known = {f.name for f in fields(self)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")
        return replace(self, **updates)

    def to_spec(self) -> VmSpec:
        return VmSpec(
            vmid=self.vmid,
            name=self.name,
            cores=self.cores,
            memory=self.memory,
            disk=self.disk,
            storage=self.storage,
            bridge=self.bridge,
            node=self.node,
            iso_volid=self.iso_volid,
        )

    def summary(self) -> list[tuple[str, str]]:
        return [
            ('VM ID', str(self.vmid)),
            ('Name', self.name or ''),
            ('Node', self.node or ''),
            ('Cores', str(self.cores)),
            ('Memory', f"{self.memory} MB"),
            ('Disk', f"{self.disk} GB on {self.storage}"),
            ('Network', self.bridge or ''),
            ('ISO', self.iso_volid or '(none)'),
        ]


@dataclass
class WizardContext:
    """Collaborators shared by every stage of one wizard run."""
    executor: Executor
    oracle: TopologyOracle
    resolver: ConfigResolver
    store: SettingsStore
    dry_run: bool = False


class WizardDriver:
    """Runs the creation wizard one key event at a time."""

    timer = None

    def __init__(self, ctx: WizardContext, preset: Optional[str] = None):
        self.ctx = ctx
        self.draft = Draft(preset=preset)
        self.step: Optional[Step] = None
        self.stage = None
        self.error = ''

    def start(self) -> None:
        self._enter(Step.WELCOME)

    @property
    def done(self) -> bool:
        return self.step in TERMINAL

    def dispatch(self, event) -> None:
        """Feed one event to the active stage. Ticks and late events are ignored."""
        if self.done or self.stage is None or not isinstance(event, Key):
            return
        self._apply(self.stage.handle(event))

    def advance(self, updates: Optional[dict] = None) -> None:
        """Merge updates and move to the next applicable step."""
        self.draft = self.draft.merge(updates or {})
        step = TRANSITIONS[self.step]
        while step in OPTIONAL and not OPTIONAL[step](self.ctx):
            logger.debug(f"Skipping {step.value}")
            self.draft = self.draft.merge(SKIP_FILL[step](self.ctx))
            step = TRANSITIONS[step]
        self._enter(step)

    def fail(self, message: str) -> None:
        logger.error(message)
        self.error = message
        self._enter(Step.ERROR)

    def cancel(self) -> None:
        self._enter(Step.CANCELLED)

    def _enter(self, step: Step) -> None:
        logger.debug(f"Wizard step: {step.value}")
        self.step = step
        self.stage = None
        if step in TERMINAL:
            return
        self.stage = STAGES[step]()
        self._apply(self.stage.enter(self.ctx, self.draft))

    def _apply(self, outcome) -> None:
        if isinstance(outcome, Advance):
            self.advance(outcome.updates)
        elif isinstance(outcome, Fail):
            self.fail(outcome.message)
        elif isinstance(outcome, Cancel):
            self.cancel()

    def render(self) -> list[str]:
        if self.step == Step.SUCCESS:
            if self.ctx.dry_run:
                return [f"Dry run: VM {self.draft.vmid} ({self.draft.name}) would be created "
                        f"on {self.draft.node}. No changes made."]
            return [f"VM {self.draft.vmid} ({self.draft.name}) created on {self.draft.node}"]
        if self.step == Step.ERROR:
            return [f"Error: {self.error}"]
        if self.step == Step.CANCELLED:
            return ['Cancelled. Nothing was created.']
        if self.stage is None:
            return []
        return self.stage.render(self.draft)

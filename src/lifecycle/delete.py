"""Guarded guest deletion.

The confirmation flow is a pure reducer, reduce(session, event) returning
the next session and the effects to perform. DeleteEngine performs those
effects against an executor and feeds the results back in. Only the DELETE
effect mutates anything, and it is emitted solely on entering DELETING.

    CHECKING -> NOT_FOUND | CONFIRM_INFO | ERROR
    CONFIRM_INFO -> BLOCKED | CONFIRM_VERIFY | CANCELLED
    BLOCKED -> CONFIRM_INFO
    CONFIRM_VERIFY -> GRACE_PERIOD | DELETING | CANCELLED
    GRACE_PERIOD -> DELETING | CANCELLED
    DELETING -> SUCCESS | ERROR
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from actions.types import Disk, Executor, ExecutorError, VmInfo
from keys import Key, TextInput, Tick
from lifecycle.timer import GraceTimer

logger = logging.getLogger(__name__)

VERIFY_MAX_LENGTH = 20


class State(Enum):
    CHECKING = 'checking'
    NOT_FOUND = 'not_found'
    CONFIRM_INFO = 'confirm_info'
    BLOCKED = 'blocked'
    CONFIRM_VERIFY = 'confirm_verify'
    GRACE_PERIOD = 'grace_period'
    DELETING = 'deleting'
    SUCCESS = 'success'
    ERROR = 'error'
    CANCELLED = 'cancelled'


TERMINAL = (State.NOT_FOUND, State.SUCCESS, State.ERROR, State.CANCELLED)


class Effect(Enum):
    LOOKUP = 'lookup'
    START_TIMER = 'start_timer'
    CANCEL_TIMER = 'cancel_timer'
    DELETE = 'delete'


@dataclass(frozen=True)
class Looked:
    """Lookup finished. info is None when the guest does not exist."""
    info: Optional[VmInfo]
    disks: tuple = ()


@dataclass(frozen=True)
class LookupFailed:
    message: str


@dataclass(frozen=True)
class Deleted:
    pass


@dataclass(frozen=True)
class DeleteFailed:
    message: str


@dataclass(frozen=True)
class DeleteSession:
    """Everything the delete flow knows about one target."""
    vmid: int
    dry_run: bool = False
    grace_seconds: int = 5
    grace_enabled: bool = True
    state: State = State.CHECKING
    info: Optional[VmInfo] = None
    disks: tuple = ()
    stop_first: bool = False
    verify: TextInput = TextInput(max_length=VERIFY_MAX_LENGTH)
    mismatch: bool = False
    remaining: int = 0
    error: str = ''

    @property
    def expected(self) -> str:
        return f"{self.vmid} DELETE"

    @property
    def done(self) -> bool:
        return self.state in TERMINAL


def verification_matches(text: str, vmid: int) -> bool:
    return text.strip().upper() == f"{vmid} DELETE"


def _after_verify(session: DeleteSession):
    if session.grace_enabled and session.grace_seconds > 0 and not session.dry_run:
        return (replace(session, state=State.GRACE_PERIOD, remaining=session.grace_seconds),
                [Effect.START_TIMER])
    return replace(session, state=State.DELETING), [Effect.DELETE]


def reduce(session: DeleteSession, event) -> tuple[DeleteSession, list[Effect]]:
    """Apply one event. Events that do not apply to the state are ignored."""
    state = session.state
    is_key = isinstance(event, Key)

    if state == State.CHECKING:
        if isinstance(event, Looked):
            if event.info is None:
                return replace(session, state=State.NOT_FOUND), []
            return replace(session, state=State.CONFIRM_INFO, info=event.info,
                           disks=tuple(event.disks)), []
        if isinstance(event, LookupFailed):
            return replace(session, state=State.ERROR, error=event.message), []

    elif state == State.CONFIRM_INFO and is_key:
        if event.kind == 'escape':
            return replace(session, state=State.CANCELLED), []
        if event.kind == 'char' and event.char in ('s', 'S'):
            return replace(session, stop_first=not session.stop_first), []
        if event.kind == 'enter':
            if session.info.running and not session.stop_first:
                return replace(session, state=State.BLOCKED), []
            return replace(session, state=State.CONFIRM_VERIFY,
                           verify=TextInput(max_length=VERIFY_MAX_LENGTH), mismatch=False), []

    elif state == State.BLOCKED and is_key:
        return replace(session, state=State.CONFIRM_INFO), []

    elif state == State.CONFIRM_VERIFY and is_key:
        if event.kind == 'escape':
            return replace(session, state=State.CANCELLED), []
        if event.kind == 'enter':
            if verification_matches(session.verify.value, session.vmid):
                return _after_verify(session)
            return replace(session, mismatch=True), []
        return replace(session, verify=session.verify.handle(event), mismatch=False), []

    elif state == State.GRACE_PERIOD:
        if is_key and event.kind == 'escape':
            return replace(session, state=State.CANCELLED, remaining=0), [Effect.CANCEL_TIMER]
        if isinstance(event, Tick):
            remaining = session.remaining - 1
            if remaining <= 0:
                return (replace(session, state=State.DELETING, remaining=0),
                        [Effect.CANCEL_TIMER, Effect.DELETE])
            return replace(session, remaining=remaining), []

    elif state == State.DELETING:
        if isinstance(event, Deleted):
            return replace(session, state=State.SUCCESS), []
        if isinstance(event, DeleteFailed):
            return replace(session, state=State.ERROR, error=event.message), []

    return session, []


class DeleteEngine:
    """Runs the delete flow for one guest.

    Args:
        executor: Executor used for lookup, stop and destroy
        session: Initial session (vmid, dry-run and grace settings)
        timer: Grace timer, polled by the front-end through .timer
    """

    def __init__(self, executor: Executor, session: DeleteSession,
                 timer: Optional[GraceTimer] = None):
        self.executor = executor
        self.session = session
        self.timer = timer or GraceTimer()

    @property
    def done(self) -> bool:
        return self.session.done

    def start(self) -> None:
        self._perform([Effect.LOOKUP])

    def dispatch(self, event) -> None:
        before = self.session.state
        self.session, effects = reduce(self.session, event)
        if self.session.state != before:
            logger.debug(f"Delete {self.session.vmid}: {before.value} -> {self.session.state.value}")
        if before == State.GRACE_PERIOD and self.session.state != State.GRACE_PERIOD:
            self.timer.cancel()
        self._perform(effects)

    def close(self) -> None:
        """Release the timer. Safe to call on any exit path."""
        self.timer.cancel()

    def _perform(self, effects: list[Effect]) -> None:
        for effect in effects:
            if effect == Effect.LOOKUP:
                self.dispatch(self._lookup())
            elif effect == Effect.START_TIMER:
                self.timer.start()
            elif effect == Effect.CANCEL_TIMER:
                self.timer.cancel()
            elif effect == Effect.DELETE:
                self.dispatch(self._delete())

    def _lookup(self):
        vmid = self.session.vmid
        try:
            info = self.executor.get_info(vmid)
        except ExecutorError as e:
            return LookupFailed(str(e))
        if info is None:
            return Looked(None)
        try:
            disks = self.executor.disk_usage(vmid)
        except ExecutorError as e:
            logger.debug(f"Disk usage for {vmid} unavailable: {e}")
            disks = info.disks
        return Looked(info, tuple(disks))

    def _delete(self):
        session = self.session
        info = session.info
        if session.dry_run:
            logger.info(f"Dry run: would delete {info.label.lower()} {session.vmid}")
            return Deleted()
        try:
            if session.stop_first and info.running:
                logger.info(f"Stopping {info.label.lower()} {session.vmid}")
                self.executor.stop(session.vmid)
            logger.info(f"Destroying {info.label.lower()} {session.vmid}")
            self.executor.destroy(session.vmid, purge=True)
        except ExecutorError as e:
            return DeleteFailed(str(e))
        return Deleted()

    def render(self) -> list[str]:
        return render_session(self.session)


def _disk_line(disk: Disk) -> str:
    line = f"  {disk.slot}: {disk.storage} {disk.size}"
    if disk.used is not None:
        line += f" (used {disk.used}, free {disk.available or '?'})"
    return line


def render_session(s: DeleteSession) -> list[str]:
    info = s.info
    what = f"{info.label} {s.vmid}" if info else f"VM/container {s.vmid}"

    if s.state == State.CHECKING:
        return [f"Checking {s.vmid}..."]
    if s.state == State.NOT_FOUND:
        return [f"VM/container {s.vmid} not found"]
    if s.state == State.CONFIRM_INFO:
        lines = [f"Delete {what}?", '',
                 f"  Name:   {info.name}",
                 f"  Node:   {info.node}",
                 f"  Status: {info.status}",
                 'Disks:']
        lines += [_disk_line(d) for d in s.disks] or ['  (none)']
        lines += ['',
                  f"Stop before delete: {'yes' if s.stop_first else 'no'} (press s to toggle)",
                  'Enter to continue, Escape to cancel']
        if s.dry_run:
            lines.insert(0, '[DRY RUN]')
        return lines
    if s.state == State.BLOCKED:
        return [f"{what} is running.",
                'Enable stop-before-delete (s) or stop it first.',
                'Press any key to go back']
    if s.state == State.CONFIRM_VERIFY:
        lines = [f"Type '{s.expected}' to confirm deletion of {what}",
                 s.verify.render('')]
        if s.mismatch:
            lines.append('! Confirmation text does not match')
        return lines
    if s.state == State.GRACE_PERIOD:
        return [f"Deleting {what} in {s.remaining}s...", 'Press Escape to abort']
    if s.state == State.DELETING:
        return [f"Deleting {what}..."]
    if s.state == State.SUCCESS:
        if s.dry_run:
            return [f"Dry run: {what} ({info.name}) would be deleted. No changes made."]
        return [f"{what} ({info.name}) deleted"]
    if s.state == State.ERROR:
        return [f"Error: {s.error}"]
    return ['Deletion cancelled']

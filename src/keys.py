"""Input events and the small input widgets built on them.

Front-ends translate terminal input into Key events and timer expiry into
Tick events. Widgets are immutable: handling a key returns a new widget.
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class Key:
    """One key press.

    kind is one of: char, enter, escape, backspace, up, down.
    """
    kind: str
    char: str = ''


@dataclass(frozen=True)
class Tick:
    """One grace-period timer tick."""


ENTER = Key('enter')
ESCAPE = Key('escape')
BACKSPACE = Key('backspace')
UP = Key('up')
DOWN = Key('down')
TICK = Tick()


def char(c: str) -> Key:
    return Key('char', c)


def typed(text: str) -> list[Key]:
    """Key events for typing text (handy for replaying input)."""
    return [char(c) for c in text]


@dataclass(frozen=True)
class TextInput:
    """Single-line text entry capped at max_length characters."""
    value: str = ''
    max_length: int = 64

    def handle(self, key: Key) -> 'TextInput':
        if key.kind == 'backspace':
            return replace(self, value=self.value[:-1])
        if key.kind == 'char' and key.char.isprintable():
            room = self.max_length - len(self.value)
            if room > 0:
                return replace(self, value=self.value + key.char[:room])
        return self

    def render(self, prompt: str) -> str:
        return f"{prompt}> {self.value}_"


@dataclass(frozen=True)
class SelectList:
    """Vertical list of (label, value) options with a cursor."""
    options: tuple = ()
    index: int = 0

    @classmethod
    def of(cls, options: list[tuple[str, object]], initial: Optional[object] = None) -> 'SelectList':
        index = 0
        for i, (_, value) in enumerate(options):
            if initial is not None and value == initial:
                index = i
                break
        return cls(options=tuple(options), index=index)

    @property
    def selected(self) -> object:
        return self.options[self.index][1] if self.options else None

    def handle(self, key: Key) -> 'SelectList':
        if not self.options:
            return self
        if key.kind == 'up':
            return replace(self, index=(self.index - 1) % len(self.options))
        if key.kind == 'down':
            return replace(self, index=(self.index + 1) % len(self.options))
        if key.kind == 'char' and key.char.isdigit():
            number = int(key.char)
            if 0 < number <= len(self.options):
                return replace(self, index=number - 1)
        return self

    def render(self) -> list[str]:
        return [f"{'>' if i == self.index else ' '} {label}"
                for i, (label, _) in enumerate(self.options)]

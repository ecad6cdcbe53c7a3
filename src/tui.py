"""Curses front-end for the interactive machines.

A machine is anything with start(), dispatch(event), render() -> lines,
done and an optional grace timer in .timer. The front-end translates curses
input into Key events, polls the timer for Tick events, and draws whatever
the machine renders. It holds no state of its own.
"""

import curses
import logging
from typing import Optional

from keys import BACKSPACE, DOWN, ENTER, ESCAPE, TICK, UP, Key, char

logger = logging.getLogger(__name__)

ESC = 27
IDLE_TIMEOUT_MS = -1  # block until a key arrives


def translate(code: int) -> Optional[Key]:
    """Map a curses getch() code to a Key, None for keys we ignore."""
    if code in (curses.KEY_ENTER, 10, 13):
        return ENTER
    if code == ESC:
        return ESCAPE
    if code in (curses.KEY_BACKSPACE, 127, 8):
        return BACKSPACE
    if code == curses.KEY_UP:
        return UP
    if code == curses.KEY_DOWN:
        return DOWN
    if 32 <= code < 127:
        return char(chr(code))
    return None


class CursesScreen:
    """Thin adapter over a curses window."""

    def __init__(self, stdscr):
        self.stdscr = stdscr
        self.stdscr.keypad(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass  # terminal cannot hide the cursor
        curses.set_escdelay(25)

    def draw(self, lines: list[str]) -> None:
        self.stdscr.clear()
        height, width = self.stdscr.getmaxyx()
        for y, line in enumerate(lines[:height - 1]):
            attr = curses.A_REVERSE if line.startswith('>') else curses.A_NORMAL
            self.stdscr.addstr(y, 0, line[:width - 1], attr)
        self.stdscr.refresh()

    def read(self, timeout: Optional[float]) -> Optional[int]:
        """Wait up to timeout seconds (forever when None). None on timeout."""
        self.stdscr.timeout(IDLE_TIMEOUT_MS if timeout is None else int(timeout * 1000))
        code = self.stdscr.getch()
        return None if code == -1 else code


def run_loop(machine, screen) -> None:
    """Drive machine until it reaches a terminal state.

    Keys and timer ticks race inside one thread: the read timeout is the time
    left until the next tick.
    """
    machine.start()
    while not machine.done:
        screen.draw(machine.render())
        timer = getattr(machine, 'timer', None)
        timeout = timer.timeout() if timer is not None else None
        code = screen.read(timeout)
        if code is not None:
            key = translate(code)
            if key is not None:
                machine.dispatch(key)
        if timer is not None and not machine.done and timer.due():
            machine.dispatch(TICK)


def run_interactive(machine) -> list[str]:
    """Run machine under curses and print its final screen on exit."""
    try:
        curses.wrapper(lambda stdscr: run_loop(machine, CursesScreen(stdscr)))
    finally:
        close = getattr(machine, 'close', None)
        if close is not None:
            close()
    lines = machine.render()
    for line in lines:
        print(line)
    return lines

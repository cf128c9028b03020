"""Plain-text macro script format.

One command per line::

    Move 640 400
    Wait 120
    MousePress 1
    Wait 85
    MouseRelease 1
    KeyPress shift
    KeyPress A
    KeyRelease A
    KeyRelease shift

Blank lines and ``#`` comments are skipped when loading. Button numbers use
the desktop toolkit convention (1 left, 2 middle, 3 right), which swaps 2 and
3 relative to the hook's native numbering.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO, Union

from macrorec import events

MOVE = "Move"
MOUSE_PRESS = "MousePress"
MOUSE_RELEASE = "MouseRelease"
MOUSE_WHEEL = "MouseWheel"
MOUSE_HWHEEL = "MouseHWheel"
KEY_PRESS = "KeyPress"
KEY_RELEASE = "KeyRelease"
WAIT = "Wait"

_INT_ARGS = {
    MOVE: 2,
    MOUSE_PRESS: 1,
    MOUSE_RELEASE: 1,
    MOUSE_WHEEL: 1,
    MOUSE_HWHEEL: 1,
    WAIT: 1,
}
_KEY_COMMANDS = (KEY_PRESS, KEY_RELEASE)

BUTTON_NAMES = {1: "left", 2: "middle", 3: "right", 4: "x1", 5: "x2"}

_BUTTON_SWAP = {events.BUTTON2: events.BUTTON3, events.BUTTON3: events.BUTTON2}


def native_to_script_button(button: int) -> int:
    return _BUTTON_SWAP.get(button, button)


def script_to_native_button(button: int) -> int:
    return _BUTTON_SWAP.get(button, button)


class ScriptError(ValueError):
    def __init__(self, line_no: int, text: str, reason: str):
        super().__init__(f"line {line_no}: {reason}: {text!r}")
        self.line_no = line_no
        self.text = text
        self.reason = reason


@dataclass(frozen=True)
class ScriptCommand:
    name: str
    args: tuple = ()
    line_no: int = 0

    def to_line(self) -> str:
        return " ".join([self.name] + [str(a) for a in self.args])

    @property
    def wait_ms(self) -> int:
        return self.args[0] if self.name == WAIT else 0


def move(x: int, y: int) -> ScriptCommand:
    return ScriptCommand(MOVE, (int(x), int(y)))


def mouse_press(button: int) -> ScriptCommand:
    return ScriptCommand(MOUSE_PRESS, (int(button),))


def mouse_release(button: int) -> ScriptCommand:
    return ScriptCommand(MOUSE_RELEASE, (int(button),))


def wheel(rotation: int, horizontal: bool = False) -> ScriptCommand:
    return ScriptCommand(MOUSE_HWHEEL if horizontal else MOUSE_WHEEL, (int(rotation),))


def key_press(token: str) -> ScriptCommand:
    return ScriptCommand(KEY_PRESS, (token,))


def key_release(token: str) -> ScriptCommand:
    return ScriptCommand(KEY_RELEASE, (token,))


def wait(ms: int) -> ScriptCommand:
    return ScriptCommand(WAIT, (int(ms),))


def parse_line(text: str, line_no: int = 0) -> Optional[ScriptCommand]:
    stripped = text.strip()
    if not stripped or stripped.startswith("#"):
        return None
    parts = stripped.split()
    name, raw_args = parts[0], parts[1:]

    if name in _KEY_COMMANDS:
        if len(raw_args) != 1:
            raise ScriptError(line_no, stripped, f"{name} takes one key")
        return ScriptCommand(name, (raw_args[0],), line_no)

    arity = _INT_ARGS.get(name)
    if arity is None:
        raise ScriptError(line_no, stripped, "unknown command")
    if len(raw_args) != arity:
        raise ScriptError(line_no, stripped, f"{name} takes {arity} argument(s)")
    try:
        args = tuple(int(a) for a in raw_args)
    except ValueError:
        raise ScriptError(line_no, stripped, "expected an integer") from None
    if name == WAIT and args[0] < 0:
        raise ScriptError(line_no, stripped, "negative wait")
    if name in (MOUSE_PRESS, MOUSE_RELEASE) and args[0] not in BUTTON_NAMES:
        raise ScriptError(line_no, stripped, "unknown button")
    return ScriptCommand(name, args, line_no)


def parse_script(lines: Iterable[str]) -> List[ScriptCommand]:
    commands = []
    for line_no, text in enumerate(lines, start=1):
        command = parse_line(text, line_no)
        if command is not None:
            commands.append(command)
    return commands


def load_script(path: str) -> List[ScriptCommand]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_script(f)


def total_wait_ms(commands: Iterable[ScriptCommand]) -> int:
    return sum(c.wait_ms for c in commands)


class ScriptWriter:
    """Writes commands to a script file, one flushed line at a time."""

    def __init__(self, target: Union[str, TextIO]):
        if isinstance(target, str):
            self._file = open(target, "w", encoding="utf-8", newline="\n")
            self._owns_file = True
        else:
            self._file = target
            self._owns_file = False
        self.line_count = 0

    def write(self, command: ScriptCommand) -> str:
        line = command.to_line()
        self._file.write(line + "\n")
        self._file.flush()
        self.line_count += 1
        return line

    def close(self) -> None:
        if self._file is None:
            return
        if self._owns_file:
            self._file.close()
        self._file = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

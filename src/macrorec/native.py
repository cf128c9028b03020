import threading
import time
from typing import Callable, List, Optional, Tuple

from macrorec import events
from macrorec.events import (
    NativeHookException,
    NativeInputEvent,
    NativeKeyEvent,
    NativeMouseEvent,
    NativeMouseWheelEvent,
)

EventSink = Callable[[NativeInputEvent], None]

MULTI_CLICK_NS = 500_000_000

MASK_SHIFT = 1 << 0
MASK_CTRL = 1 << 1
MASK_META = 1 << 2
MASK_ALT = 1 << 3

_MODIFIER_PREFIXES = (
    ("shift", MASK_SHIFT),
    ("ctrl", MASK_CTRL),
    ("cmd", MASK_META),
    ("alt", MASK_ALT),
)

_WHITESPACE_NAMES = {" ": "space", "\t": "tab", "\n": "enter", "\r": "enter"}

# pynput button name -> native button number
_PYNPUT_BUTTONS = {
    "left": events.BUTTON1,
    "right": events.BUTTON2,
    "middle": events.BUTTON3,
    "x1": events.BUTTON4,
    "x2": events.BUTTON5,
}
_PYAUTOGUI_BUTTONS = {
    events.BUTTON1: "left",
    events.BUTTON2: "right",
    events.BUTTON3: "middle",
}


def key_token(name: Optional[str] = None, char: Optional[str] = None, vk: Optional[int] = None) -> Optional[str]:
    """Build the script token for a key, or None when it can't be named."""
    if name:
        return name
    if char:
        if char in _WHITESPACE_NAMES:
            return _WHITESPACE_NAMES[char]
        if len(char) == 1 and char.isprintable() and not char.isspace():
            return char
    if vk is not None:
        return f"<{vk}>"
    return None


def split_key_token(token: str) -> Tuple[str, object]:
    """Return ("char", c), ("vk", code) or ("name", name) for a key token."""
    if len(token) == 1:
        return "char", token
    if token.startswith("<") and token.endswith(">"):
        try:
            return "vk", int(token[1:-1])
        except ValueError:
            pass
    return "name", token


def normalize_key_token(token: str) -> str:
    """Lowercase named keys ("F8" -> "f8"); single characters keep their case."""
    kind, _ = split_key_token(token)
    return token.lower() if kind == "name" else token


def modifier_mask(token: str) -> int:
    for prefix, mask in _MODIFIER_PREFIXES:
        if token.startswith(prefix):
            return mask
    return 0


class HookTranslator:
    """Turns raw hook callbacks into native events.

    Keeps the bit of state needed to tell drags from moves, detect clicks and
    count multi-clicks.
    """

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns):
        self._clock = clock
        self._held_buttons = set()
        self._modifiers = 0
        self._press_pos = {}
        self._last_press: Optional[Tuple[int, int, int, int]] = None
        self._click_count = 0

    def on_move(self, x: int, y: int) -> List[NativeInputEvent]:
        event_id = events.NATIVE_MOUSE_DRAGGED if self._held_buttons else events.NATIVE_MOUSE_MOVED
        return [NativeMouseEvent(event_id, self._clock(), self._modifiers, x=x, y=y)]

    def on_click(self, x: int, y: int, button: int, pressed: bool) -> List[NativeInputEvent]:
        now = self._clock()
        if pressed:
            last = self._last_press
            if (
                last is not None
                and last[0] == button
                and (last[1], last[2]) == (x, y)
                and now - last[3] <= MULTI_CLICK_NS
            ):
                self._click_count += 1
            else:
                self._click_count = 1
            self._last_press = (button, x, y, now)
            self._held_buttons.add(button)
            self._press_pos[button] = (x, y)
            return [
                NativeMouseEvent(
                    events.NATIVE_MOUSE_PRESSED,
                    now,
                    self._modifiers,
                    x=x,
                    y=y,
                    button=button,
                    click_count=self._click_count,
                )
            ]

        self._held_buttons.discard(button)
        press_pos = self._press_pos.pop(button, None)
        count = self._click_count if press_pos == (x, y) else 0
        out = [
            NativeMouseEvent(
                events.NATIVE_MOUSE_RELEASED,
                now,
                self._modifiers,
                x=x,
                y=y,
                button=button,
                click_count=count,
            )
        ]
        if count:
            out.append(
                NativeMouseEvent(
                    events.NATIVE_MOUSE_CLICKED,
                    now,
                    self._modifiers,
                    x=x,
                    y=y,
                    button=button,
                    click_count=count,
                )
            )
        return out

    def on_scroll(self, x: int, y: int, dx: int, dy: int) -> List[NativeInputEvent]:
        now = self._clock()
        out = []
        if dy:
            out.append(NativeMouseWheelEvent(when=now, modifiers=self._modifiers, x=x, y=y, rotation=int(dy)))
        if dx:
            out.append(
                NativeMouseWheelEvent(
                    when=now, modifiers=self._modifiers, x=x, y=y, rotation=int(dx), horizontal=True
                )
            )
        return out

    def on_key_press(self, token: str, char: Optional[str] = None) -> List[NativeInputEvent]:
        now = self._clock()
        out = [NativeKeyEvent(events.NATIVE_KEY_PRESSED, now, self._modifiers, key=token, key_char=char)]
        self._modifiers |= modifier_mask(token)
        if char and char.isprintable():
            out.append(NativeKeyEvent(events.NATIVE_KEY_TYPED, now, self._modifiers, key=token, key_char=char))
        return out

    def on_key_release(self, token: str, char: Optional[str] = None) -> List[NativeInputEvent]:
        self._modifiers &= ~modifier_mask(token)
        return [
            NativeKeyEvent(events.NATIVE_KEY_RELEASED, self._clock(), self._modifiers, key=token, key_char=char)
        ]


class PynputBackend:
    """Platform input hook built on pynput listeners.

    Synthesized mouse input goes through pyautogui and keyboard input through
    pynput's controller. Both libraries talk to the display at import time, so
    they are only imported by load().
    """

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns):
        self._clock = clock
        self._mouse = None
        self._keyboard = None
        self._pyautogui = None
        self._key_controller = None
        self._mouse_controller = None
        self._mouse_listener = None
        self._keyboard_listener = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._mouse is not None

    def load(self) -> None:
        if self.loaded:
            return
        try:
            import pyautogui
            from pynput import keyboard, mouse
        except Exception as exc:
            raise NativeHookException(f"Unable to load the native input hook: {exc}") from exc

        # Remove pyautogui's default pause to keep playback timing accurate
        pyautogui.PAUSE = 0
        self._pyautogui = pyautogui
        self._mouse = mouse
        self._keyboard = keyboard
        self._key_controller = keyboard.Controller()
        self._mouse_controller = mouse.Controller()

    def start(self, sink: EventSink) -> None:
        self.load()
        with self._lock:
            if self._mouse_listener is not None:
                return
            callbacks = self._hook_callbacks(HookTranslator(self._clock), sink)
            mouse_listener = self._mouse.Listener(
                on_move=callbacks["on_move"], on_click=callbacks["on_click"], on_scroll=callbacks["on_scroll"]
            )
            keyboard_listener = self._keyboard.Listener(
                on_press=callbacks["on_press"], on_release=callbacks["on_release"]
            )
            try:
                mouse_listener.start()
                keyboard_listener.start()
                mouse_listener.wait()
                keyboard_listener.wait()
            except Exception as exc:
                mouse_listener.stop()
                keyboard_listener.stop()
                raise NativeHookException(f"Unable to register the native hook: {exc}") from exc
            self._mouse_listener = mouse_listener
            self._keyboard_listener = keyboard_listener

    def stop(self) -> None:
        with self._lock:
            if self._mouse_listener is not None:
                self._mouse_listener.stop()
                self._mouse_listener = None
            if self._keyboard_listener is not None:
                self._keyboard_listener.stop()
                self._keyboard_listener = None

    def _hook_callbacks(self, translator: HookTranslator, sink: EventSink) -> dict:
        # pynput passes injected=True for synthesized input, which includes our own playback
        def emit(produced):
            for event in produced:
                sink(event)

        def on_move(x, y, injected=False):
            if not injected:
                emit(translator.on_move(int(x), int(y)))

        def on_click(x, y, button, pressed, injected=False):
            if injected:
                return
            code = _PYNPUT_BUTTONS.get(getattr(button, "name", ""), events.NOBUTTON)
            emit(translator.on_click(int(x), int(y), code, pressed))

        def on_scroll(x, y, dx, dy, injected=False):
            if not injected:
                emit(translator.on_scroll(int(x), int(y), int(dx), int(dy)))

        def on_press(key, injected=False):
            if injected:
                return
            token, char = self._describe_key(key)
            if token:
                emit(translator.on_key_press(token, char))

        def on_release(key, injected=False):
            if injected:
                return
            token, char = self._describe_key(key)
            if token:
                emit(translator.on_key_release(token, char))

        return {
            "on_move": on_move,
            "on_click": on_click,
            "on_scroll": on_scroll,
            "on_press": on_press,
            "on_release": on_release,
        }

    def _describe_key(self, key):
        if isinstance(key, self._keyboard.Key):
            return key_token(name=key.name), None
        char = getattr(key, "char", None)
        return key_token(char=char, vk=getattr(key, "vk", None)), char

    def _to_pynput_key(self, token: str):
        kind, value = split_key_token(token)
        if kind == "char":
            return self._keyboard.KeyCode.from_char(value)
        if kind == "vk":
            return self._keyboard.KeyCode.from_vk(value)
        try:
            return self._keyboard.Key[value]
        except KeyError:
            raise ValueError(f"unknown key: {token}") from None

    def post(self, event: NativeInputEvent) -> None:
        self.load()
        if isinstance(event, NativeKeyEvent):
            key = self._to_pynput_key(event.key)
            if event.id == events.NATIVE_KEY_PRESSED:
                self._key_controller.press(key)
            elif event.id == events.NATIVE_KEY_RELEASED:
                self._key_controller.release(key)
            elif event.id == events.NATIVE_KEY_TYPED:
                self._key_controller.tap(key)
            return

        if isinstance(event, NativeMouseWheelEvent):
            if event.x is not None and event.y is not None:
                self._pyautogui.moveTo(event.x, event.y, duration=0)
            if event.horizontal:
                self._pyautogui.hscroll(event.rotation)
            else:
                self._pyautogui.scroll(event.rotation)
            return

        if not isinstance(event, NativeMouseEvent):
            raise ValueError(f"unsupported event: {event!r}")

        has_pos = event.x is not None and event.y is not None
        if event.id in events.MOTION_EVENT_IDS:
            if has_pos:
                self._pyautogui.moveTo(event.x, event.y, duration=0)
            return

        name = _PYAUTOGUI_BUTTONS.get(event.button)
        if name is None:
            self._post_side_button(event)
            return
        kwargs = {"button": name}
        if has_pos:
            kwargs.update(x=event.x, y=event.y)
        if event.id == events.NATIVE_MOUSE_PRESSED:
            self._pyautogui.mouseDown(**kwargs)
        elif event.id == events.NATIVE_MOUSE_RELEASED:
            self._pyautogui.mouseUp(**kwargs)
        elif event.id == events.NATIVE_MOUSE_CLICKED:
            self._pyautogui.click(clicks=max(1, event.click_count), **kwargs)

    def _post_side_button(self, event: NativeMouseEvent) -> None:
        # pyautogui has no side buttons; pynput only knows them on some platforms
        name = {events.BUTTON4: "x1", events.BUTTON5: "x2"}.get(event.button)
        button = getattr(self._mouse.Button, name, None) if name else None
        if button is None:
            raise ValueError(f"unsupported mouse button: {event.button}")
        if event.x is not None and event.y is not None:
            self._mouse_controller.position = (event.x, event.y)
        if event.id == events.NATIVE_MOUSE_PRESSED:
            self._mouse_controller.press(button)
        elif event.id == events.NATIVE_MOUSE_RELEASED:
            self._mouse_controller.release(button)
        elif event.id == events.NATIVE_MOUSE_CLICKED:
            self._mouse_controller.click(button, max(1, event.click_count))

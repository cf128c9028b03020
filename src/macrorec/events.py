from dataclasses import dataclass, field
from typing import Optional

NATIVE_KEY_PRESSED = 2401
NATIVE_KEY_RELEASED = 2402
NATIVE_KEY_TYPED = 2400

NATIVE_MOUSE_CLICKED = 2500
NATIVE_MOUSE_PRESSED = 2501
NATIVE_MOUSE_RELEASED = 2502
NATIVE_MOUSE_MOVED = 2503
NATIVE_MOUSE_DRAGGED = 2504
NATIVE_MOUSE_WHEEL = 2505

NOBUTTON = 0
BUTTON1 = 1
BUTTON2 = 2
BUTTON3 = 3
BUTTON4 = 4
BUTTON5 = 5

MOTION_EVENT_IDS = (NATIVE_MOUSE_MOVED, NATIVE_MOUSE_DRAGGED)


@dataclass(frozen=True)
class NativeInputEvent:
    id: int
    when: int = 0
    modifiers: int = 0


@dataclass(frozen=True)
class NativeKeyEvent(NativeInputEvent):
    key: str = ""
    key_char: Optional[str] = None


@dataclass(frozen=True)
class NativeMouseEvent(NativeInputEvent):
    # x/y of None means "wherever the pointer is now" for posted events.
    x: Optional[int] = None
    y: Optional[int] = None
    button: int = NOBUTTON
    click_count: int = 0


@dataclass(frozen=True)
class NativeMouseWheelEvent(NativeMouseEvent):
    id: int = field(default=NATIVE_MOUSE_WHEEL)
    rotation: int = 0
    horizontal: bool = False


class NativeKeyListener:
    def native_key_pressed(self, event: NativeKeyEvent) -> None:
        pass

    def native_key_released(self, event: NativeKeyEvent) -> None:
        pass

    def native_key_typed(self, event: NativeKeyEvent) -> None:
        pass


class NativeMouseListener:
    def native_mouse_clicked(self, event: NativeMouseEvent) -> None:
        pass

    def native_mouse_pressed(self, event: NativeMouseEvent) -> None:
        pass

    def native_mouse_released(self, event: NativeMouseEvent) -> None:
        pass


class NativeMouseMotionListener:
    def native_mouse_moved(self, event: NativeMouseEvent) -> None:
        pass

    def native_mouse_dragged(self, event: NativeMouseEvent) -> None:
        pass


class NativeMouseWheelListener:
    def native_mouse_wheel_moved(self, event: NativeMouseWheelEvent) -> None:
        pass


class NativeHookException(Exception):
    """Raised when the platform input hook cannot be loaded or registered."""

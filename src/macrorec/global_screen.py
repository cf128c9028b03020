"""Process-wide source of native input events.

GlobalScreen owns the platform hook backend and a single dispatch thread.
Hook callbacks hand events to dispatch_event(); the dispatch thread then
delivers them, one at a time and in arrival order, to the registered
listeners of the matching kind.
"""
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from macrorec import events
from macrorec.events import (
    NativeInputEvent,
    NativeKeyEvent,
    NativeKeyListener,
    NativeMouseEvent,
    NativeMouseListener,
    NativeMouseMotionListener,
    NativeMouseWheelEvent,
    NativeMouseWheelListener,
)

DISPATCH_THREAD_NAME = "Native Dispatch"

KEY = "key"
MOUSE = "mouse"
MOTION = "motion"
WHEEL = "wheel"


def _new_dispatcher() -> Executor:
    return ThreadPoolExecutor(max_workers=1, thread_name_prefix=DISPATCH_THREAD_NAME)


class GlobalScreen:
    _instance: Optional["GlobalScreen"] = None
    _instance_lock = threading.Lock()

    def __init__(self, backend=None, log_callback: Optional[Callable[[str], None]] = None):
        if backend is None:
            from macrorec.native import PynputBackend

            backend = PynputBackend()
        self.backend = backend
        self.log_callback = log_callback
        self._listeners: Dict[str, List[object]] = {KEY: [], MOUSE: [], MOTION: [], WHEEL: []}
        self._listeners_lock = threading.Lock()
        self._executor_lock = threading.Lock()
        self._executor: Optional[Executor] = _new_dispatcher()
        self._registered = False

    @classmethod
    def get_instance(cls) -> "GlobalScreen":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            instance, cls._instance = cls._instance, None
        if instance is not None:
            instance.shutdown()

    def _log(self, message):
        if self.log_callback:
            self.log_callback(message)

    # ---------------------- Listeners ----------------------
    def _add(self, kind, listener):
        if listener is None:
            return
        with self._listeners_lock:
            self._listeners[kind].append(listener)

    def _remove(self, kind, listener):
        if listener is None:
            return
        with self._listeners_lock:
            try:
                self._listeners[kind].remove(listener)
            except ValueError:
                pass

    def _snapshot(self, kind) -> List[object]:
        with self._listeners_lock:
            return list(self._listeners[kind])

    def add_native_key_listener(self, listener: NativeKeyListener) -> None:
        self._add(KEY, listener)

    def remove_native_key_listener(self, listener: NativeKeyListener) -> None:
        self._remove(KEY, listener)

    def add_native_mouse_listener(self, listener: NativeMouseListener) -> None:
        self._add(MOUSE, listener)

    def remove_native_mouse_listener(self, listener: NativeMouseListener) -> None:
        self._remove(MOUSE, listener)

    def add_native_mouse_motion_listener(self, listener: NativeMouseMotionListener) -> None:
        self._add(MOTION, listener)

    def remove_native_mouse_motion_listener(self, listener: NativeMouseMotionListener) -> None:
        self._remove(MOTION, listener)

    def add_native_mouse_wheel_listener(self, listener: NativeMouseWheelListener) -> None:
        self._add(WHEEL, listener)

    def remove_native_mouse_wheel_listener(self, listener: NativeMouseWheelListener) -> None:
        self._remove(WHEEL, listener)

    # ---------------------- Hook ----------------------
    def register_native_hook(self) -> None:
        """Start the OS-level hooks. Raises NativeHookException on failure."""
        if self._registered:
            return
        self.backend.start(self.dispatch_event)
        self._registered = True

    def unregister_native_hook(self) -> None:
        if not self._registered:
            return
        self.backend.stop()
        self._registered = False

    def is_native_hook_registered(self) -> bool:
        return self._registered

    def post_native_event(self, event: NativeInputEvent) -> None:
        self.backend.post(event)

    # ---------------------- Dispatch ----------------------
    def set_event_dispatcher(self, dispatcher: Optional[Executor]) -> None:
        with self._executor_lock:
            previous, self._executor = self._executor, dispatcher
        if previous is not None:
            previous.shutdown(wait=False)

    def dispatch_event(self, event: NativeInputEvent) -> None:
        with self._executor_lock:
            executor = self._executor
        if executor is None:
            return
        try:
            executor.submit(self._process_event, event)
        except RuntimeError:
            # executor already shut down
            return

    def _process_event(self, event):
        if isinstance(event, NativeKeyEvent):
            self._process_key_event(event)
        elif isinstance(event, NativeMouseWheelEvent):
            self._process_mouse_wheel_event(event)
        elif isinstance(event, NativeMouseEvent):
            self._process_mouse_event(event)

    def _notify(self, listener, method_name, event):
        try:
            getattr(listener, method_name)(event)
        except Exception as exc:
            self._log(f"Listener {type(listener).__name__}.{method_name} failed: {exc!r}")

    def _process_key_event(self, event: NativeKeyEvent):
        method = {
            events.NATIVE_KEY_PRESSED: "native_key_pressed",
            events.NATIVE_KEY_RELEASED: "native_key_released",
            events.NATIVE_KEY_TYPED: "native_key_typed",
        }.get(event.id)
        if method is None:
            return
        for listener in self._snapshot(KEY):
            self._notify(listener, method, event)

    def _process_mouse_event(self, event: NativeMouseEvent):
        method = {
            events.NATIVE_MOUSE_CLICKED: "native_mouse_clicked",
            events.NATIVE_MOUSE_PRESSED: "native_mouse_pressed",
            events.NATIVE_MOUSE_RELEASED: "native_mouse_released",
            events.NATIVE_MOUSE_MOVED: "native_mouse_moved",
            events.NATIVE_MOUSE_DRAGGED: "native_mouse_dragged",
        }.get(event.id)
        if method is None:
            return
        kind = MOTION if event.id in events.MOTION_EVENT_IDS else MOUSE
        for listener in self._snapshot(kind):
            self._notify(listener, method, event)

    def _process_mouse_wheel_event(self, event: NativeMouseWheelEvent):
        for listener in self._snapshot(WHEEL):
            self._notify(listener, "native_mouse_wheel_moved", event)

    def shutdown(self, wait: bool = True) -> None:
        self.unregister_native_hook()
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

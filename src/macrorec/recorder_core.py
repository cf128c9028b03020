import threading
import time

from macrorec import script
from macrorec.events import (
    NativeHookException,
    NativeKeyListener,
    NativeMouseListener,
    NativeMouseMotionListener,
    NativeMouseWheelListener,
)
from macrorec.global_screen import GlobalScreen

NS_PER_MS = 1_000_000


class MacroRecorder(
    NativeKeyListener,
    NativeMouseListener,
    NativeMouseMotionListener,
    NativeMouseWheelListener,
):
    """Writes global input events to a macro script as they happen.

    Every recorded command is preceded by a ``Wait`` line holding the time
    since the previous recorded command, so playback reproduces the pacing.
    Listener callbacks run on the GlobalScreen dispatch thread.
    """

    def __init__(
        self,
        file_path=None,
        screen=None,
        clock=time.perf_counter_ns,
        move_sample_hz=60,
        stop_key=None,
        log_callback=None,
        line_callback=None,
        error_callback=None,
        stop_callback=None,
    ):
        self.file_path = file_path
        self.screen = screen
        self.clock = clock
        self.move_sample_hz = move_sample_hz
        self.stop_key = stop_key
        self.log_callback = log_callback
        self.line_callback = line_callback
        self.error_callback = error_callback
        self.stop_callback = stop_callback

        self.recording = False
        self._writer = None
        self._last_time = None
        self._last_move_time = None
        self._pending_move = None
        self._owns_hook = False
        self._lock = threading.Lock()

    def _log(self, message):
        if self.log_callback:
            self.log_callback(message)

    def _emit_line(self, line):
        if self.line_callback:
            self.line_callback(line)

    def _screen(self):
        if self.screen is None:
            self.screen = GlobalScreen.get_instance()
        return self.screen

    @property
    def line_count(self):
        return self._writer.line_count if self._writer else 0

    # ---------------------- Control ----------------------
    def start_recording(self, file_path=None):
        if self.recording:
            self._log("Already recording.")
            return False
        target = file_path or self.file_path
        if not target:
            self._log("No script file chosen.")
            return False
        try:
            writer = script.ScriptWriter(target)
        except OSError as exc:
            self._log(f"Cannot open script for writing: {exc}")
            return False

        screen = self._screen()
        with self._lock:
            self._writer = writer
            self._last_time = self.clock()
            self._last_move_time = None
            self._pending_move = None
            self.file_path = target
            self.recording = True

        self._add_listeners(screen)
        self._owns_hook = not screen.is_native_hook_registered()
        try:
            screen.register_native_hook()
        except NativeHookException as exc:
            self._log(str(exc))
            self._owns_hook = False
            self._teardown(screen)
            return False
        self._log(f"Recording to {target}")
        return True

    def stop_recording(self):
        if not self._teardown(self._screen()):
            self._log("Not recording.")
            return False
        self._log(f"Recording stopped ({self.line_count} lines written to {self.file_path}).")
        return True

    def _teardown(self, screen):
        lines = []
        with self._lock:
            if not self.recording:
                return False
            if self._pending_move is not None:
                x, y, when = self._pending_move
                self._pending_move = None
                try:
                    lines += self._write_locked(script.move(x, y), when)
                except OSError as exc:
                    self._log(f"Error writing script: {exc}")
            self.recording = False
            writer = self._writer
        for line in lines:
            self._emit_line(line)
        self._remove_listeners(screen)
        if self._owns_hook:
            screen.unregister_native_hook()
            self._owns_hook = False
        try:
            writer.close()
        except OSError as exc:
            self._log(f"Error closing script: {exc}")
        return True

    def _add_listeners(self, screen):
        screen.add_native_key_listener(self)
        screen.add_native_mouse_listener(self)
        screen.add_native_mouse_motion_listener(self)
        screen.add_native_mouse_wheel_listener(self)

    def _remove_listeners(self, screen):
        screen.remove_native_key_listener(self)
        screen.remove_native_mouse_listener(self)
        screen.remove_native_mouse_motion_listener(self)
        screen.remove_native_mouse_wheel_listener(self)

    # ---------------------- Writing ----------------------
    def _write_locked(self, command, now):
        delay_ms = abs(now - self._last_time) // NS_PER_MS
        self._last_time = now
        lines = []
        if delay_ms > 0:
            lines.append(self._writer.write(script.wait(delay_ms)))
        lines.append(self._writer.write(command))
        return lines

    def _event_time(self, event):
        # hook timestamp; events built without one fall back to delivery time
        return event.when or self.clock()

    def _record(self, command, now=None, flush_move=True):
        if now is None:
            now = self.clock()
        lines = []
        error = None
        with self._lock:
            if not self.recording:
                return
            try:
                if flush_move and self._pending_move is not None:
                    x, y, when = self._pending_move
                    self._pending_move = None
                    lines += self._write_locked(script.move(x, y), when)
                lines += self._write_locked(command, now)
            except OSError as exc:
                error = exc
        for line in lines:
            self._emit_line(line)
        if error is not None:
            self._fail(error)

    def _fail(self, exc):
        self._log(f"Error writing script: {exc}")
        self.stop_recording()
        if self.error_callback:
            self.error_callback(exc)

    def _record_move(self, event):
        now = self._event_time(event)
        if self.move_sample_hz and self._last_move_time is not None:
            if now - self._last_move_time < 1_000_000_000 / self.move_sample_hz:
                self._pending_move = (event.x, event.y, now)
                return
        self._last_move_time = now
        self._pending_move = None
        self._record(script.move(event.x, event.y), now, flush_move=False)

    # ---------------------- Listener callbacks ----------------------
    def native_mouse_pressed(self, event):
        self._record(script.mouse_press(script.native_to_script_button(event.button)), self._event_time(event))

    def native_mouse_released(self, event):
        self._record(script.mouse_release(script.native_to_script_button(event.button)), self._event_time(event))

    def native_mouse_moved(self, event):
        self._record_move(event)

    def native_mouse_dragged(self, event):
        self._record_move(event)

    def native_mouse_wheel_moved(self, event):
        self._record(script.wheel(event.rotation, event.horizontal), self._event_time(event))

    def native_key_pressed(self, event):
        if self.stop_key and event.key == self.stop_key:
            if self.recording and self.stop_recording() and self.stop_callback:
                self.stop_callback()
            return
        self._record(script.key_press(event.key), self._event_time(event))

    def native_key_released(self, event):
        if self.stop_key and event.key == self.stop_key:
            return
        self._record(script.key_release(event.key), self._event_time(event))

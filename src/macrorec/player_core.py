import threading

from macrorec import events, script
from macrorec.events import (
    NativeHookException,
    NativeKeyEvent,
    NativeKeyListener,
    NativeMouseEvent,
    NativeMouseWheelEvent,
)
from macrorec.global_screen import GlobalScreen


class MacroPlayer(NativeKeyListener):
    def __init__(self, screen=None, log_callback=None, finished_callback=None, stop_key=None):
        self.screen = screen
        self.log_callback = log_callback
        self.finished_callback = finished_callback
        self.stop_key = stop_key

        self.playing = False
        self.file_path = None
        self.loop_count = 1
        self.loop_infinite = False
        self.loops_completed = 0
        self.play_thread = None

        self._stop_event = threading.Event()
        self._held_buttons = []
        self._held_keys = []
        self._owns_hook = False

    def _log(self, message):
        if self.log_callback:
            self.log_callback(message)

    def _screen(self):
        if self.screen is None:
            self.screen = GlobalScreen.get_instance()
        return self.screen

    # ---------------------- Loading ----------------------
    def load(self, path):
        """Parse a script, returning its commands or None after logging why."""
        try:
            commands = script.load_script(path)
        except FileNotFoundError:
            self._log(f"Script not found: {path}")
            return None
        except script.ScriptError as exc:
            self._log(f"Invalid script {path}: {exc}")
            return None
        except (OSError, UnicodeDecodeError) as exc:
            self._log(f"Cannot read script {path}: {exc}")
            return None
        return commands

    # ---------------------- Playback ----------------------
    def play(self, path=None, loop_count=None, loop_infinite=None):
        if self.playing:
            self._log("Playback already running.")
            return False
        target = path or self.file_path
        if not target:
            self._log("No script chosen.")
            return False
        commands = self.load(target)
        if commands is None:
            return False
        if not any(c.name != script.WAIT for c in commands):
            self._log(f"Nothing to play in {target}.")
            return False

        if loop_count is not None:
            self.loop_count = max(1, int(loop_count))
        if loop_infinite is not None:
            self.loop_infinite = bool(loop_infinite)
        self.file_path = target
        self.loops_completed = 0
        self._stop_event.clear()
        self.playing = True
        self._watch_stop_key()

        total_wait = script.total_wait_ms(commands)
        self._log(f"Playing {target} ({len(commands)} commands, {total_wait} ms of waits per loop).")
        self.play_thread = threading.Thread(
            target=self._play,
            args=(commands, self.loop_count, self.loop_infinite),
            name="Macro Playback",
            daemon=True,
        )
        self.play_thread.start()
        return True

    def _watch_stop_key(self):
        if not self.stop_key:
            return
        screen = self._screen()
        screen.add_native_key_listener(self)
        self._owns_hook = not screen.is_native_hook_registered()
        try:
            screen.register_native_hook()
        except NativeHookException as exc:
            self._owns_hook = False
            screen.remove_native_key_listener(self)
            self._log(f"Stop key unavailable: {exc}")

    def _unwatch_stop_key(self):
        if not self.stop_key:
            return
        screen = self._screen()
        screen.remove_native_key_listener(self)
        if self._owns_hook:
            screen.unregister_native_hook()
            self._owns_hook = False

    def _play(self, commands, loop_count, loop_infinite):
        loop_index = 0
        try:
            while not self._stop_event.is_set() and (loop_infinite or loop_index < loop_count):
                if loop_infinite:
                    self._log(f"Playback loop {loop_index + 1}")
                for command in commands:
                    if self._stop_event.is_set():
                        break
                    if command.name == script.WAIT:
                        if self._stop_event.wait(command.wait_ms / 1000.0):
                            break
                        continue
                    try:
                        self._execute(command)
                    except Exception as exc:
                        self._log(f"Playback failed at line {command.line_no} ({command.to_line()}): {exc}")
                        self._stop_event.set()
                        break
                else:
                    loop_index += 1
        finally:
            self._release_held()
            self.loops_completed = loop_index
            self._unwatch_stop_key()
            self.playing = False
            self._log(f"Playback stopped after {loop_index} loop(s).")
            if self.finished_callback:
                self.finished_callback(loop_index)

    def _post(self, event):
        self._screen().post_native_event(event)

    def _execute(self, command):
        name, args = command.name, command.args
        if name == script.MOVE:
            self._post(NativeMouseEvent(events.NATIVE_MOUSE_MOVED, x=args[0], y=args[1]))
        elif name in (script.MOUSE_PRESS, script.MOUSE_RELEASE):
            button = script.script_to_native_button(args[0])
            if name == script.MOUSE_PRESS:
                self._post(NativeMouseEvent(events.NATIVE_MOUSE_PRESSED, button=button))
                self._held_buttons.append(button)
            else:
                self._post(NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, button=button))
                if button in self._held_buttons:
                    self._held_buttons.remove(button)
        elif name in (script.MOUSE_WHEEL, script.MOUSE_HWHEEL):
            self._post(NativeMouseWheelEvent(rotation=args[0], horizontal=name == script.MOUSE_HWHEEL))
        elif name == script.KEY_PRESS:
            self._post(NativeKeyEvent(events.NATIVE_KEY_PRESSED, key=args[0]))
            self._held_keys.append(args[0])
        elif name == script.KEY_RELEASE:
            self._post(NativeKeyEvent(events.NATIVE_KEY_RELEASED, key=args[0]))
            if args[0] in self._held_keys:
                self._held_keys.remove(args[0])

    def _release_held(self):
        for button in reversed(self._held_buttons):
            try:
                self._post(NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, button=button))
            except Exception as exc:
                self._log(f"Could not release mouse button {button}: {exc}")
        for key in reversed(self._held_keys):
            try:
                self._post(NativeKeyEvent(events.NATIVE_KEY_RELEASED, key=key))
            except Exception as exc:
                self._log(f"Could not release key {key}: {exc}")
        self._held_buttons = []
        self._held_keys = []

    def stop(self):
        if not self.playing:
            self._log("Not playing.")
            return False
        self._stop_event.set()
        self._log("Stopping playback...")
        return True

    def wait(self, timeout=None):
        thread = self.play_thread
        if thread is not None:
            thread.join(timeout)
        return not self.playing

    def native_key_pressed(self, event):
        if event.key == self.stop_key and self.playing:
            self.stop()

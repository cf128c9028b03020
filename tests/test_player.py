import time

from macrorec import events
from macrorec.events import NativeKeyEvent, NativeMouseEvent, NativeMouseWheelEvent
from macrorec.global_screen import GlobalScreen
from macrorec.player_core import MacroPlayer

from conftest import FakeBackend, ImmediateExecutor


def _script(tmp_path, *lines, name="macro.txt"):
    path = tmp_path / name
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_plays_every_command(screen, backend, tmp_path):
    path = _script(
        tmp_path,
        "Move 10 20",
        "Wait 1",
        "MousePress 1",
        "MouseRelease 1",
        "MousePress 3",
        "MouseRelease 3",
        "MouseWheel -2",
        "MouseHWheel 1",
        "KeyPress a",
        "KeyRelease a",
    )
    finished = []
    player = MacroPlayer(screen=screen, finished_callback=finished.append)
    assert player.play(path)
    assert player.wait(5)

    assert backend.posted == [
        NativeMouseEvent(events.NATIVE_MOUSE_MOVED, x=10, y=20),
        NativeMouseEvent(events.NATIVE_MOUSE_PRESSED, button=events.BUTTON1),
        NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, button=events.BUTTON1),
        NativeMouseEvent(events.NATIVE_MOUSE_PRESSED, button=events.BUTTON2),
        NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, button=events.BUTTON2),
        NativeMouseWheelEvent(rotation=-2),
        NativeMouseWheelEvent(rotation=1, horizontal=True),
        NativeKeyEvent(events.NATIVE_KEY_PRESSED, key="a"),
        NativeKeyEvent(events.NATIVE_KEY_RELEASED, key="a"),
    ]
    assert finished == [1]
    assert not player.playing


def test_loops(screen, backend, tmp_path):
    path = _script(tmp_path, "Move 1 1")
    player = MacroPlayer(screen=screen)
    assert player.play(path, loop_count=3)
    player.wait(5)
    assert len(backend.posted) == 3
    assert player.loops_completed == 3


def test_held_inputs_released_at_end(screen, backend, tmp_path):
    path = _script(tmp_path, "KeyPress shift", "MousePress 1")
    player = MacroPlayer(screen=screen)
    player.play(path)
    player.wait(5)
    assert backend.posted[2:] == [
        NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, button=events.BUTTON1),
        NativeKeyEvent(events.NATIVE_KEY_RELEASED, key="shift"),
    ]


def test_stop_interrupts_wait(screen, backend, tmp_path):
    path = _script(tmp_path, "Wait 10000", "Move 5 5")
    finished = []
    player = MacroPlayer(screen=screen, finished_callback=finished.append)
    started = time.monotonic()
    assert player.play(path, loop_infinite=True)
    assert player.playing
    assert player.stop()
    assert player.wait(5)
    assert time.monotonic() - started < 5
    assert backend.posted == []
    assert finished == [0]


def test_rejects_bad_scripts(screen, tmp_path):
    logs = []
    player = MacroPlayer(screen=screen, log_callback=logs.append)

    assert not player.play(_script(tmp_path, "Move 1 1", "Fly 3"))
    assert "line 2" in logs[-1]

    assert not player.play(str(tmp_path / "missing.txt"))
    assert logs[-1].startswith("Script not found")

    assert not player.play(_script(tmp_path, "Wait 5", "# nothing", name="waits.txt"))
    assert logs[-1].startswith("Nothing to play")

    assert not player.play()
    assert logs[-1] == "No script chosen."
    assert not player.playing


def test_second_play_is_refused(screen, tmp_path):
    logs = []
    path = _script(tmp_path, "Wait 10000", "Move 1 1")
    player = MacroPlayer(screen=screen, log_callback=logs.append)
    player.play(path)
    assert not player.play(path)
    assert "Playback already running." in logs
    player.stop()
    player.wait(5)


def test_post_failure_stops_playback(tmp_path):
    logs = []
    screen = GlobalScreen(backend=FakeBackend(post_error=ValueError("unknown key: nope")))
    path = _script(tmp_path, "Move 1 1", "KeyPress nope")
    player = MacroPlayer(screen=screen, log_callback=logs.append)
    player.play(path)
    player.wait(5)
    assert not player.playing
    assert any(line.startswith("Playback failed at line 1 (Move 1 1)") for line in logs)
    screen.shutdown()


def test_stop_key_aborts_playback(screen, backend, tmp_path):
    path = _script(tmp_path, "Wait 10000", "Move 1 1")
    player = MacroPlayer(screen=screen, stop_key="f8")
    player.play(path)
    assert screen.is_native_hook_registered()

    screen.dispatch_event(NativeKeyEvent(events.NATIVE_KEY_PRESSED, key="g"))
    assert player.playing
    screen.dispatch_event(NativeKeyEvent(events.NATIVE_KEY_PRESSED, key="f8"))
    assert player.wait(5)
    assert _wait_until(lambda: not screen.is_native_hook_registered())
    assert backend.posted == []


def test_stop_key_without_hook_still_plays(tmp_path):
    logs = []
    backend = FakeBackend(fail=True)
    screen = GlobalScreen(backend=backend)
    screen.set_event_dispatcher(ImmediateExecutor())
    player = MacroPlayer(screen=screen, stop_key="f8", log_callback=logs.append)
    assert player.play(_script(tmp_path, "Move 2 2"))
    player.wait(5)
    assert "Stop key unavailable: hook refused" in logs
    assert backend.posted == [NativeMouseEvent(events.NATIVE_MOUSE_MOVED, x=2, y=2)]
    screen.shutdown()


def test_log_reports_wait_total(screen, tmp_path):
    logs = []
    path = _script(tmp_path, "Wait 2", "Move 1 1", "Wait 3")
    player = MacroPlayer(screen=screen, log_callback=logs.append)
    assert player.play(path)
    player.wait(5)
    assert f"Playing {path} (3 commands, 5 ms of waits per loop)." in logs


class _WatchingBackend(FakeBackend):
    def __init__(self):
        super().__init__()
        self.player = None
        self.playing_at_stop = []

    def stop(self):
        self.playing_at_stop.append(self.player.playing)
        super().stop()


def test_stop_key_released_before_playing_clears(tmp_path):
    backend = _WatchingBackend()
    screen = GlobalScreen(backend=backend)
    screen.set_event_dispatcher(ImmediateExecutor())
    player = MacroPlayer(screen=screen, stop_key="f8")
    backend.player = player
    assert player.play(_script(tmp_path, "Move 1 1"))
    assert player.wait(5)
    assert backend.playing_at_stop == [True]
    assert not screen.is_native_hook_registered()
    screen.shutdown()

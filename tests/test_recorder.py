from macrorec import events
from macrorec.events import NativeKeyEvent, NativeMouseEvent, NativeMouseWheelEvent
from macrorec.global_screen import GlobalScreen
from macrorec.recorder_core import MacroRecorder

from conftest import FakeBackend, ImmediateExecutor


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


def _press(screen, button, x=0, y=0):
    screen.dispatch_event(NativeMouseEvent(events.NATIVE_MOUSE_PRESSED, x=x, y=y, button=button))


def _release(screen, button, x=0, y=0):
    screen.dispatch_event(NativeMouseEvent(events.NATIVE_MOUSE_RELEASED, x=x, y=y, button=button))


def _move(screen, x, y, dragged=False):
    event_id = events.NATIVE_MOUSE_DRAGGED if dragged else events.NATIVE_MOUSE_MOVED
    screen.dispatch_event(NativeMouseEvent(event_id, x=x, y=y))


def _key(screen, key, pressed=True):
    event_id = events.NATIVE_KEY_PRESSED if pressed else events.NATIVE_KEY_RELEASED
    screen.dispatch_event(NativeKeyEvent(event_id, key=key))


def test_press_and_release_with_waits(screen, backend, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock)
    assert recorder.start_recording()
    assert recorder.recording
    assert backend.started == 1

    clock.set_ms(120)
    _press(screen, events.BUTTON1)
    _release(screen, events.BUTTON1)
    clock.set_ms(1500)
    _press(screen, events.BUTTON2)
    clock.set_ms(1500.9)
    _release(screen, events.BUTTON2)
    assert recorder.stop_recording()

    assert _lines(path) == [
        "Wait 120",
        "MousePress 1",
        "MouseRelease 1",
        "Wait 1380",
        "MousePress 3",
        "MouseRelease 3",
    ]
    assert backend.stopped == 1
    assert not recorder.recording


def test_moves_are_sampled_and_flushed_before_next_action(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock, move_sample_hz=10)
    recorder.start_recording()

    clock.set_ms(50)
    _move(screen, 10, 10)
    clock.set_ms(80)
    _move(screen, 20, 20)
    clock.set_ms(100)
    _move(screen, 30, 30, dragged=True)
    clock.set_ms(200)
    _press(screen, events.BUTTON1, 30, 30)
    recorder.stop_recording()

    assert _lines(path) == [
        "Wait 50",
        "Move 10 10",
        "Wait 50",
        "Move 30 30",
        "Wait 100",
        "MousePress 1",
    ]


def test_zero_sample_rate_records_every_move(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock, move_sample_hz=0)
    recorder.start_recording()
    for i in range(3):
        _move(screen, i, i)
    recorder.stop_recording()
    assert _lines(path) == ["Move 0 0", "Move 1 1", "Move 2 2"]


def test_wheel_and_keys(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock)
    recorder.start_recording()
    screen.dispatch_event(NativeMouseWheelEvent(x=0, y=0, rotation=-2))
    screen.dispatch_event(NativeMouseWheelEvent(x=0, y=0, rotation=1, horizontal=True))
    _key(screen, "shift")
    _key(screen, "A")
    screen.dispatch_event(NativeKeyEvent(events.NATIVE_KEY_TYPED, key="A", key_char="A"))
    _key(screen, "A", pressed=False)
    _key(screen, "shift", pressed=False)
    screen.dispatch_event(NativeMouseEvent(events.NATIVE_MOUSE_CLICKED, x=0, y=0, button=1))
    recorder.stop_recording()

    assert _lines(path) == [
        "MouseWheel -2",
        "MouseHWheel 1",
        "KeyPress shift",
        "KeyPress A",
        "KeyRelease A",
        "KeyRelease shift",
    ]


def test_line_callback_sees_every_line(screen, clock, tmp_path):
    seen = []
    recorder = MacroRecorder(str(tmp_path / "m.txt"), screen=screen, clock=clock, line_callback=seen.append)
    recorder.start_recording()
    clock.set_ms(5)
    _key(screen, "a")
    recorder.stop_recording()
    assert seen == ["Wait 5", "KeyPress a"]
    assert recorder.line_count == 2


def test_stop_key_ends_recording_and_is_not_written(screen, backend, clock, tmp_path):
    path = tmp_path / "macro.txt"
    stopped = []
    recorder = MacroRecorder(
        str(path),
        screen=screen,
        clock=clock,
        stop_key="f8",
        stop_callback=lambda: stopped.append(True),
    )
    recorder.start_recording()
    _key(screen, "a")
    _key(screen, "f8")
    _key(screen, "f8", pressed=False)
    _key(screen, "b")

    assert stopped == [True]
    assert not recorder.recording
    assert backend.stopped == 1
    assert _lines(path) == ["KeyPress a"]


def test_events_after_stop_are_ignored(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock)
    recorder.start_recording()
    recorder.stop_recording()
    recorder.native_key_pressed(NativeKeyEvent(events.NATIVE_KEY_PRESSED, key="a"))
    _key(screen, "a")
    assert _lines(path) == []


def test_start_and_stop_guards(screen, tmp_path):
    logs = []
    recorder = MacroRecorder(str(tmp_path / "m.txt"), screen=screen, log_callback=logs.append)
    assert not recorder.stop_recording()
    assert recorder.start_recording()
    assert not recorder.start_recording()
    assert "Already recording." in logs
    recorder.stop_recording()

    no_target = MacroRecorder(screen=screen, log_callback=logs.append)
    assert not no_target.start_recording()
    assert "No script file chosen." in logs


def test_unwritable_target(screen, tmp_path):
    logs = []
    recorder = MacroRecorder(str(tmp_path), screen=screen, log_callback=logs.append)
    assert not recorder.start_recording()
    assert not recorder.recording
    assert logs[-1].startswith("Cannot open script for writing")


def test_write_error_stops_recording(screen, backend, clock, tmp_path):
    logs, errors = [], []
    recorder = MacroRecorder(
        str(tmp_path / "m.txt"),
        screen=screen,
        clock=clock,
        log_callback=logs.append,
        error_callback=errors.append,
    )
    recorder.start_recording()

    def broken_write(command):
        raise OSError("disk full")

    recorder._writer.write = broken_write
    _key(screen, "a")

    assert not recorder.recording
    assert len(errors) == 1 and str(errors[0]) == "disk full"
    assert "Error writing script: disk full" in logs
    assert backend.stopped == 1


def test_hook_failure_leaves_nothing_registered(tmp_path):
    logs = []
    screen = GlobalScreen(backend=FakeBackend(fail=True))
    screen.set_event_dispatcher(ImmediateExecutor())
    recorder = MacroRecorder(str(tmp_path / "m.txt"), screen=screen, log_callback=logs.append)
    assert not recorder.start_recording()
    assert not recorder.recording
    assert logs == ["hook refused"]
    assert screen._snapshot("key") == []
    screen.shutdown()


def test_leaves_hook_registered_by_someone_else(screen, backend, tmp_path):
    screen.register_native_hook()
    recorder = MacroRecorder(str(tmp_path / "m.txt"), screen=screen)
    recorder.start_recording()
    recorder.stop_recording()
    assert screen.is_native_hook_registered()
    assert backend.stopped == 0


def test_pending_move_written_on_stop(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock, move_sample_hz=10)
    recorder.start_recording()
    clock.set_ms(50)
    _move(screen, 10, 10)
    clock.set_ms(80)
    _move(screen, 500, 500)
    assert recorder.stop_recording()
    assert _lines(path) == ["Wait 50", "Move 10 10", "Wait 30", "Move 500 500"]
    assert recorder.line_count == 4


def test_pending_move_written_on_stop_key(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock, move_sample_hz=10, stop_key="f8")
    recorder.start_recording()
    clock.set_ms(50)
    _move(screen, 10, 10)
    clock.set_ms(80)
    _move(screen, 500, 500)
    clock.set_ms(90)
    _key(screen, "f8")
    assert not recorder.recording
    assert _lines(path) == ["Wait 50", "Move 10 10", "Wait 30", "Move 500 500"]


def test_waits_use_hook_timestamps(screen, clock, tmp_path):
    path = tmp_path / "macro.txt"
    recorder = MacroRecorder(str(path), screen=screen, clock=clock)
    recorder.start_recording()
    # both events are delivered late, after the dispatch queue backed up
    clock.set_ms(1000)
    screen.dispatch_event(NativeKeyEvent(events.NATIVE_KEY_PRESSED, when=100_000_000, key="a"))
    screen.dispatch_event(NativeKeyEvent(events.NATIVE_KEY_RELEASED, when=400_000_000, key="a"))
    recorder.stop_recording()
    assert _lines(path) == ["Wait 100", "KeyPress a", "Wait 300", "KeyRelease a"]

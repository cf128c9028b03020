import pytest

from macrorec.events import NativeHookException
from macrorec.global_screen import GlobalScreen


class FakeBackend:
    def __init__(self, fail=False, post_error=None):
        self.fail = fail
        self.post_error = post_error
        self.sink = None
        self.started = 0
        self.stopped = 0
        self.posted = []

    def start(self, sink):
        if self.fail:
            raise NativeHookException("hook refused")
        self.sink = sink
        self.started += 1

    def stop(self):
        self.sink = None
        self.stopped += 1

    def post(self, event):
        if self.post_error is not None:
            raise self.post_error
        self.posted.append(event)


class ImmediateExecutor:
    """Runs submitted work in the calling thread."""

    def __init__(self):
        self.shut_down = False

    def submit(self, fn, *args):
        if self.shut_down:
            raise RuntimeError("cannot schedule new futures after shutdown")
        fn(*args)

    def shutdown(self, wait=True):
        self.shut_down = True


class FakeClock:
    def __init__(self, start_ms=0):
        self.now = start_ms * 1_000_000

    def __call__(self):
        return self.now

    def set_ms(self, ms):
        self.now = ms * 1_000_000


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def screen(backend):
    logs = []
    s = GlobalScreen(backend=backend, log_callback=logs.append)
    s.logs = logs
    s.set_event_dispatcher(ImmediateExecutor())
    yield s
    s.shutdown()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_global_screen():
    yield
    GlobalScreen.reset_instance()

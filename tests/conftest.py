import pytest

from panelbus import BroadcastBus, Control, Panel


class RecordingControl(Control):
    """Control that keeps every signal it receives, optionally into a shared log."""

    def __init__(self, name, log=None):
        super().__init__(name)
        self.received = []
        self._log = log

    def on_notify(self, key, data):
        self.received.append((key, data))
        if self._log is not None:
            self._log.append((self.name, key, data))


@pytest.fixture()
def errors():
    return []


@pytest.fixture()
def bus(errors):
    return BroadcastBus("test", error_handler=errors.append)


@pytest.fixture()
def panel(errors):
    return Panel("test", error_handler=errors.append)


@pytest.fixture()
def make_control():
    def _make(name, log=None):
        return RecordingControl(name, log=log)
    return _make

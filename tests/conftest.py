import pytest
from watchdog.observers.polling import PollingObserver

from shaderpp.filesystem import FileSystem


@pytest.fixture
def file_system():
    fs = FileSystem(observer_factory=lambda: PollingObserver(timeout=0.1))
    yield fs
    fs.close()


@pytest.fixture
def write_file(tmp_path):
    """Writes text to a path relative to tmp_path and returns the absolute path."""
    def write(relative, text):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return write

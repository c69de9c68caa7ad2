import os
import threading
import time

import pytest

from shaderpp.dictionary import Dictionary
from shaderpp.preprocessor import ShaderPreprocessor


def test_path_tokens(file_system, tmp_path):
    file_system.register_path_token("ROOT", str(tmp_path))
    file_system.register_path_token("SHADERS", "${ROOT}/shaders")
    assert file_system.has_path_token("SHADERS")
    assert file_system.abs_path("${SHADERS}/a.glsl") == str(tmp_path / "shaders" / "a.glsl")


def test_path_token_errors(file_system, tmp_path):
    file_system.register_path_token("ROOT", str(tmp_path))
    with pytest.raises(KeyError):
        file_system.register_path_token("ROOT", "/elsewhere")
    file_system.register_path_token("ROOT", "/elsewhere", override=True)
    assert file_system.abs_path("${ROOT}") == os.path.normpath("/elsewhere")

    with pytest.raises(KeyError):
        file_system.abs_path("${UNKNOWN}/a.glsl")

    file_system.register_path_token("LOOP", "${LOOP}")
    with pytest.raises(ValueError):
        file_system.abs_path("${LOOP}")


def test_paths(file_system, write_file, tmp_path):
    path = write_file("a/b.glsl", "")
    assert file_system.exists(str(path))
    assert not file_system.exists(str(tmp_path / "a"))
    assert file_system.is_directory(str(tmp_path / "a"))
    assert file_system.directory_of(str(path)) == str(tmp_path / "a")
    assert file_system.filename_of(str(path)) == "b.glsl"
    assert file_system.normalize(str(tmp_path / "a" / ".." / "a" / "b.glsl")) == str(path)
    with file_system.open(str(path)) as f:
        assert f.read() == ""


def test_watch_schedules_one_watch_per_directory(file_system, write_file, tmp_path):
    a = write_file("a.glsl", "")
    b = write_file("b.glsl", "")
    tracked_a = file_system.watch(str(a), lambda path: None)
    tracked_b = file_system.watch(str(b), lambda path: None)
    assert file_system.watched_directories() == [str(tmp_path)]

    tracked_a.release()
    assert file_system.watched_directories() == [str(tmp_path)]
    tracked_b.release()
    tracked_b.release()
    assert file_system.watched_directories() == []


def test_watch_in_missing_directory_is_inert(file_system, tmp_path):
    tracked = file_system.watch(str(tmp_path / "missing" / "a.glsl"), lambda path: None)
    assert file_system.watched_directories() == []
    tracked.release()


def test_change_in_included_file_notifies_callback(file_system, write_file):
    main = write_file("main.glsl", '#include "common.glsl"\n')
    common = write_file("common.glsl", "c\n")
    changed = threading.Event()

    with ShaderPreprocessor(str(main), Dictionary(), file_system=file_system) as preprocessor:
        preprocessor.set_callback(lambda p: changed.set())
        assert preprocessor.process().success

        # Give the polling observer time to take its first snapshot
        time.sleep(0.5)
        common.write_text("c\nd\n", encoding="utf-8")
        assert changed.wait(10)

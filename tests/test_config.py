import pytest

from shaderpp.config import ConfigError, load_config, parse_config
from shaderpp.dictionary import Dictionary


def test_load_config_resolves_relative_paths(write_file, tmp_path):
    write_file("values.yaml", "color: red\n")
    write_file("other.yaml", "color: blue\n")
    config_path = write_file("project/shaderpp.yaml", (
        "include_paths: [common]\n"
        "path_tokens: {SHADERS: shaders}\n"
        "dictionary: ../values.yaml\n"
        "write:\n"
        "  - src: shaders/main.glsl\n"
        "    dst: build/main.glsl\n"
        "  - src: shaders/other.glsl\n"
        "    dst: build/other.glsl\n"
        "    dictionary: ../other.yaml\n"
    ))
    project = tmp_path / "project"

    config = load_config(str(config_path))

    assert config.include_paths == [project / "common"]
    assert config.path_tokens == {"SHADERS": str(project / "shaders")}
    first, second = config.jobs
    assert first.src == project / "shaders" / "main.glsl"
    assert first.dst == project / "build" / "main.glsl"
    assert first.dictionary.get_value("color") == "red"
    assert first.dictionary_path == project / ".." / "values.yaml"
    assert second.dictionary.get_value("color") == "blue"


def test_inline_dictionary(tmp_path):
    config = parse_config({
        "dictionary": {"lights": {"sun": "1.0"}},
        "write": [{"src": "a.glsl", "dst": "b.glsl"}],
    }, tmp_path)
    job, = config.jobs
    assert job.dictionary.keys("lights") == ["sun"]
    assert job.dictionary_path is None


def test_missing_dictionary_is_empty(tmp_path):
    config = parse_config({"write": [{"src": "a.glsl", "dst": "b.glsl"}]}, tmp_path)
    assert config.jobs[0].dictionary == Dictionary()
    assert config.include_paths == []


def test_reload_dictionary_updates_in_place(write_file, tmp_path):
    values = write_file("values.yaml", "color: red\n")
    config = parse_config({
        "dictionary": "values.yaml",
        "write": [{"src": "a.glsl", "dst": "b.glsl"}],
    }, tmp_path)
    job, = config.jobs
    dictionary = job.dictionary

    values.write_text("color: green\n", encoding="utf-8")
    job.reload_dictionary()
    assert dictionary.get_value("color") == "green"


def test_null_dictionary_entries_are_ignored(write_file, tmp_path):
    write_file("values.yaml", "color: red\nunused:\n")
    config = parse_config({
        "dictionary": "values.yaml",
        "write": [{"src": "a.glsl", "dst": "b.glsl"}],
    }, tmp_path)
    assert config.jobs[0].dictionary.keys() == ["color"]


@pytest.mark.parametrize("cfg", [
    [],
    {},
    {"write": []},
    {"write": [{"src": "a.glsl"}]},
    {"write": [{"src": "a.glsl", "dst": 3}]},
    {"write": [{"src": "a.glsl", "dst": "b.glsl"}], "include_paths": "common"},
    {"write": [{"src": "a.glsl", "dst": "b.glsl"}], "path_tokens": ["a"]},
    {"write": [{"src": "a.glsl", "dst": "b.glsl"}], "dictionary": "missing.yaml"},
    {"write": [{"src": "a.glsl", "dst": "b.glsl"}], "dictionary": {"a": [None]}},
])
def test_invalid_configs(cfg, tmp_path):
    with pytest.raises(ConfigError):
        parse_config(cfg, tmp_path)


def test_invalid_yaml(write_file, tmp_path):
    path = write_file("bad.yaml", "write: [\n")
    with pytest.raises(ConfigError):
        load_config(str(path))
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"))

import pytest

from shaderpp.dictionary import Dictionary


@pytest.fixture
def dictionary():
    return Dictionary({
        "name": "sun",
        "count": 3,
        "enabled": True,
        "scale": 0.5,
        "list": [1, {"inner": "x"}],
        "lights": {"sun": {"color": "vec3(1.0)"}, "sky": {"color": "vec3(0.2)"}},
    })


def test_nested_keys(dictionary):
    assert dictionary.has_key("lights.sun.color")
    assert not dictionary.has_key("lights.moon")
    assert not dictionary.has_key("name.inner")
    assert dictionary.get_value("lights.sky.color") == "vec3(0.2)"
    assert "lights.sun" in dictionary


def test_type_checks_are_exact(dictionary):
    assert dictionary.has_value("count", int)
    assert not dictionary.has_value("count", float)
    assert dictionary.has_value("enabled", bool)
    assert not dictionary.has_value("enabled", int)
    assert dictionary.has_value("lights", Dictionary)
    assert dictionary.has_value("list", list)
    assert not dictionary.has_value("missing", str)
    assert dictionary.value_type("scale") is float


def test_get_value_errors(dictionary):
    with pytest.raises(KeyError):
        dictionary.get_value("missing")
    with pytest.raises(TypeError):
        dictionary.get_value("count", str)
    assert dictionary.get_value("name", str) == "sun"


def test_lists_convert_nested_mappings(dictionary):
    inner = dictionary.get_value("list")[1]
    assert isinstance(inner, Dictionary)
    assert inner.get_value("inner") == "x"


def test_keys_keep_insertion_order(dictionary):
    assert dictionary.keys() == ["name", "count", "enabled", "scale", "list", "lights"]
    assert dictionary.keys("lights") == ["sun", "sky"]
    assert dictionary.keys("name") == []
    assert dictionary.keys("missing") == []


def test_set_value():
    d = Dictionary()
    assert d.empty()
    assert not d.set_value("a.b", "x")
    assert d.set_value("a.b", "x", create_intermediate=True)
    assert d.get_value("a.b") == "x"
    assert d.set_value("a.c", {"d": 1})
    assert d.has_value("a.c", Dictionary)
    assert d.keys("a") == ["b", "c"]
    assert len(d) == 1


def test_dotted_keys_at_construction_are_literal():
    d = Dictionary({"a.b": "x", "versions": {"1.0": "a", 2.5: "b"}})
    assert d.keys() == ["a.b", "versions"]
    assert d.get_value("a.b") == "x"
    assert d.keys("versions") == ["1.0", "2.5"]
    assert d.get_value("versions.1.0") == "a"
    assert d.get_value("versions.2.5") == "b"
    assert not d.has_key("versions.1")


def test_set_value_replaces_literal_dotted_key():
    d = Dictionary({"a.b": "x"})
    assert d.set_value("a.b", "y")
    assert d.keys() == ["a.b"]
    assert d.get_value("a.b") == "y"


def test_dotted_yaml_keys_stay_whole(write_file):
    path = write_file("values.yaml", 'versions: {"1.0": a, "2.0": b}\n')
    d = Dictionary.from_yaml(str(path))
    assert d.keys("versions") == ["1.0", "2.0"]
    assert d.get_value("versions.2.0") == "b"


@pytest.mark.parametrize("key", ["name.", ".name", "lights..sun", "lights.sun.", "."])
def test_empty_key_segments_do_not_resolve(dictionary, key):
    assert not dictionary.has_key(key)
    assert dictionary.keys(key) == []


@pytest.mark.parametrize("key", ["a.", ".a", "a..b"])
def test_set_value_rejects_empty_key_segments(key):
    with pytest.raises(KeyError):
        Dictionary().set_value(key, "x", create_intermediate=True)


def test_null_values_are_skipped(write_file):
    path = write_file("values.yaml", "color: red\nunused:\nlights:\n  sun:\n")
    d = Dictionary.from_yaml(str(path))
    assert d.keys() == ["color", "lights"]
    assert d.keys("lights") == []


def test_unsupported_values_are_rejected_with_their_location():
    with pytest.raises(TypeError, match="'a'"):
        Dictionary({"a": object()})
    with pytest.raises(TypeError, match=r"'lights\.sun\[1\]'"):
        Dictionary({"lights": {"sun": [1, None]}})


def test_assign_keeps_identity(dictionary):
    other = Dictionary({"x": "y"})
    same = dictionary
    dictionary.assign(other)
    assert same.keys() == ["x"]
    assert same == other


def test_from_yaml(tmp_path):
    path = tmp_path / "values.yaml"
    path.write_text("lights:\n  1: red\n  2: green\nname: test\n", encoding="utf-8")
    d = Dictionary.from_yaml(str(path))
    assert d.keys("lights") == ["1", "2"]
    assert d.get_value("lights.2", str) == "green"


def test_from_yaml_empty_and_invalid(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert Dictionary.from_yaml(str(empty)).empty()

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(TypeError):
        Dictionary.from_yaml(str(scalar))

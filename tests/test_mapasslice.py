import pytest

from warpagg.mapasslice import MapAsSlice


def test_add_and_slice_sorted():
    m = MapAsSlice()
    m.add("b")
    m.add("a")
    m.add("b")
    assert m.slice() == ["a", "b"]


def test_add_map_union():
    m = MapAsSlice(["x"])
    m.add_map(MapAsSlice(["y", "x"]))
    assert m.slice() == ["x", "y"]


def test_add_slice_union():
    m = MapAsSlice(["c"])
    m.add_slice(["a", "c"])
    assert m.slice() == ["a", "c"]


def test_set_slice_replaces():
    m = MapAsSlice(["old"])
    m.set_slice(["new1", "new2"])
    assert m.slice() == ["new1", "new2"]


def test_clone_is_independent():
    m = MapAsSlice(["a"])
    c = m.clone()
    c.add("z")
    assert m.slice() == ["a"]
    assert c.slice() == ["a", "z"]


def test_to_json_empty():
    assert MapAsSlice().to_json() == "[]"


def test_to_json_sorted_compact():
    assert MapAsSlice(["b", "a"]).to_json() == '["a","b"]'


def test_to_json_html_escapes():
    text = MapAsSlice(["<host>"]).to_json()
    assert "<" not in text
    assert "\\u003c" in text


@pytest.mark.parametrize(
    "keys", [[], ["one"], ["b", "a", "c"], ["<&>", 'quote"d', "ünï"]]
)
def test_json_round_trip(keys):
    m = MapAsSlice(keys)
    back = MapAsSlice.from_json(m.to_json())
    assert back == m
    assert isinstance(back, MapAsSlice)


def test_from_json_null():
    assert MapAsSlice.from_json("null") is None


@pytest.mark.parametrize("data", ['{"a": 1}', "[1, 2]", '"text"'])
def test_from_json_rejects_non_string_arrays(data):
    with pytest.raises(ValueError):
        MapAsSlice.from_json(data)


def test_from_json_invalid_syntax():
    with pytest.raises(ValueError):
        MapAsSlice.from_json("[")
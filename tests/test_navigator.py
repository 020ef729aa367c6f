from related_books.core.navigator import (
    array_or_empty,
    first_reference,
    get_path,
    parse_json,
    references,
    text_or_empty,
)


def test_parse_json_absorbs_bad_input() -> None:
    assert parse_json(None) is None
    assert parse_json("") is None
    assert parse_json("{not json") is None
    assert parse_json("42") is None
    assert parse_json('{"a": 1}') == {"a": 1}


def test_field_accessors_never_raise() -> None:
    node = {"title": "Dune", "n": 3, "desc": {"type": "/type/text", "value": "Spice"}, "tags": "x"}
    assert text_or_empty(node, "title") == "Dune"
    assert text_or_empty(node, "n") == "3"
    assert text_or_empty(node, "desc") == "Spice"
    assert text_or_empty(node, "missing") == ""
    assert text_or_empty(["not", "a", "dict"], "title") == ""
    assert array_or_empty(node, "tags") == []
    assert array_or_empty(None, "tags") == []
    assert array_or_empty({"tags": ["a"]}, "tags") == ["a"]
    assert get_path({"a": {"b": {"c": 1}}}, "a", "b", "c") == 1
    assert get_path({"a": 1}, "a", "b") is None


def test_reference_variants() -> None:
    assert first_reference("/series/OL1L") == "/series/OL1L"
    assert first_reference({"url": "https://openlibrary.org/series/OL2L"}) == "https://openlibrary.org/series/OL2L"
    assert first_reference([{"key": "/works/OL1W"}, {"key": "/works/OL2W"}]) == "/works/OL1W"
    assert first_reference([{"author": {"key": "/authors/OL9A"}, "type": {"key": "/type/author_role"}}]) == "/authors/OL9A"
    assert first_reference([]) is None
    assert first_reference({"name": "no reference"}) is None
    assert references(["/a", {"key": "/b"}, 7, {"url": "/c"}]) == ["/a", "/b", "/c"]

"""Tests for tandem.view.tree — the immutable node model."""

import pytest

from tandem._errors import MalformedTree
from tandem.view.tree import Node, ViewState, element, validate_tree


def _sample() -> Node:
    return element(
        "div", "app",
        element("h1", "title", text="Todos"),
        element("ul", "list", element("li", "a", text="one"), element("li", "b", text="two")),
    )


class TestNode:
    """Node — frozen, keyed, compared structurally."""

    def test_attrs_are_read_only(self) -> None:
        node = element("p", "p", text="hi")
        with pytest.raises(TypeError):
            node.attrs["text"] = "bye"  # type: ignore[index]

    def test_frozen(self) -> None:
        node = element("p", "p")
        with pytest.raises(AttributeError):
            node.tag = "div"  # type: ignore[misc]

    def test_structural_equality(self) -> None:
        assert _sample() == _sample()
        assert hash(_sample()) == hash(_sample())

    def test_attr_change_breaks_equality(self) -> None:
        assert element("p", "p", text="a") != element("p", "p", text="b")

    def test_attr_value_type_matters(self) -> None:
        assert element("input", "i", checked=1) != element("input", "i", checked=True)
        assert element("input", "i", size=1) != element("input", "i", size=1.0)
        assert element("input", "i", checked=True) == element("input", "i", checked=True)

    def test_child(self) -> None:
        root = _sample()
        assert root.child("title") is not None
        assert root.child("missing") is None

    def test_find_by_path(self) -> None:
        root = _sample()
        found = root.find(("list", "b"))
        assert found is not None
        assert found.attrs["text"] == "two"
        assert root.find(()) is root
        assert root.find(("list", "zzz")) is None
        assert root.find(("nope", "a")) is None

    def test_walk_depth_first(self) -> None:
        paths = [path for path, _node in _sample().walk()]
        assert paths == [(), ("title",), ("list",), ("list", "a"), ("list", "b")]

    def test_dict_round_trip(self) -> None:
        root = _sample()
        assert Node.from_dict(root.to_dict()) == root


class TestValidateTree:
    """validate_tree — sibling keys must be unique."""

    def test_valid_tree_passes(self) -> None:
        validate_tree(_sample())

    def test_same_key_in_different_parents_allowed(self) -> None:
        validate_tree(element("div", "r", element("p", "x", element("b", "k")), element("p", "y", element("b", "k"))))

    def test_duplicate_sibling_keys_rejected(self) -> None:
        root = element("ul", "list", element("li", "a"), element("li", "a"))
        with pytest.raises(MalformedTree, match="duplicate child key 'a'"):
            validate_tree(root)

    def test_nested_duplicate_names_location(self) -> None:
        root = element("div", "r", element("ul", "list", element("li", "x"), element("li", "x")))
        with pytest.raises(MalformedTree, match="under list"):
            validate_tree(root)


class TestViewState:
    """ViewState — a tree at a version."""

    def test_dict_round_trip(self) -> None:
        state = ViewState(version=4, root=_sample())
        assert ViewState.from_dict(state.to_dict()) == state

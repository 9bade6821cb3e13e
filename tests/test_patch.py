"""Tests for tandem.view.patch — operations, codec, and application."""

import pytest

from tandem._errors import MalformedTree, ProtocolError
from tandem.view.patch import (
    InsertChild,
    Patch,
    RemoveChild,
    ReorderChildren,
    UpdateAttributes,
    apply_op,
    apply_patch,
)
from tandem.view.tree import element


def _tree():
    return element(
        "div", "app",
        element("ul", "list", element("li", "a", text="A"), element("li", "b", text="B")),
    )


class TestApplyOp:
    """apply_op — pure rebuilds of the addressed node."""

    def test_update_attributes(self) -> None:
        tree = apply_op(_tree(), UpdateAttributes(path=("list", "a"), set={"text": "AA", "done": True}))
        node = tree.find(("list", "a"))
        assert node is not None
        assert dict(node.attrs) == {"text": "AA", "done": True}

    def test_unset_attribute(self) -> None:
        tree = apply_op(_tree(), UpdateAttributes(path=("list", "b"), unset=("text",)))
        node = tree.find(("list", "b"))
        assert node is not None
        assert "text" not in node.attrs

    def test_remove_child(self) -> None:
        tree = apply_op(_tree(), RemoveChild(parent=("list",), key="a"))
        assert [c.key for c in tree.find(("list",)).children] == ["b"]  # type: ignore[union-attr]

    def test_insert_child(self) -> None:
        tree = apply_op(_tree(), InsertChild(parent=("list",), index=1, node=element("li", "z")))
        assert [c.key for c in tree.find(("list",)).children] == ["a", "z", "b"]  # type: ignore[union-attr]

    def test_reorder_children(self) -> None:
        tree = apply_op(_tree(), ReorderChildren(parent=("list",), keys=("b", "a")))
        assert [c.key for c in tree.find(("list",)).children] == ["b", "a"]  # type: ignore[union-attr]

    def test_original_tree_untouched(self) -> None:
        original = _tree()
        apply_op(original, RemoveChild(parent=("list",), key="a"))
        assert original == _tree()

    def test_missing_path(self) -> None:
        with pytest.raises(MalformedTree):
            apply_op(_tree(), UpdateAttributes(path=("nope",), set={"x": 1}))

    def test_remove_missing_child(self) -> None:
        with pytest.raises(MalformedTree):
            apply_op(_tree(), RemoveChild(parent=("list",), key="zzz"))

    def test_reorder_must_cover_children(self) -> None:
        with pytest.raises(MalformedTree):
            apply_op(_tree(), ReorderChildren(parent=("list",), keys=("a",)))

    def test_insert_out_of_range(self) -> None:
        with pytest.raises(MalformedTree):
            apply_op(_tree(), InsertChild(parent=("list",), index=5, node=element("li", "z")))


class TestApplyPatch:
    """apply_patch — operations applied in order."""

    def test_ops_applied_in_sequence(self) -> None:
        patch = Patch(
            base_version=0,
            version=1,
            ops=(
                RemoveChild(parent=("list",), key="a"),
                InsertChild(parent=("list",), index=0, node=element("li", "c", text="C")),
                UpdateAttributes(path=("list", "b"), set={"text": "BB"}),
            ),
        )
        tree = apply_patch(_tree(), patch)
        assert tree == element(
            "div", "app",
            element("ul", "list", element("li", "c", text="C"), element("li", "b", text="BB")),
        )


class TestPatchCodec:
    """Patch.to_dict / from_dict — the JSON shape sent to clients."""

    def test_round_trip_every_op(self) -> None:
        patch = Patch(
            base_version=3,
            version=4,
            ops=(
                UpdateAttributes(path=(), set={"title": "x"}, unset=("old",)),
                RemoveChild(parent=("list",), key="a"),
                ReorderChildren(parent=("list",), keys=("b",)),
                InsertChild(parent=("list",), index=1, node=element("li", "c", text="C")),
            ),
        )
        assert Patch.from_dict(patch.to_dict()) == patch

    def test_wire_shape(self) -> None:
        data = Patch(1, 2, (RemoveChild(parent=("list",), key="a"),)).to_dict()
        assert data == {"base": 1, "version": 2, "ops": [{"op": "remove", "parent": ["list"], "key": "a"}]}

    def test_unknown_op(self) -> None:
        with pytest.raises(ProtocolError, match="unknown patch operation"):
            Patch.from_dict({"base": 0, "version": 1, "ops": [{"op": "explode"}]})

    def test_malformed_op(self) -> None:
        with pytest.raises(ProtocolError, match="malformed"):
            Patch.from_dict({"base": 0, "version": 1, "ops": [{"op": "insert", "parent": []}]})

"""Tests for tandem.view.differ — keyed structural diffing."""

from __future__ import annotations

import random

import pytest

from tandem._errors import MalformedTree
from tandem.view.differ import compute_diff, diff_states
from tandem.view.patch import (
    InsertChild,
    Patch,
    RemoveChild,
    ReorderChildren,
    UpdateAttributes,
    apply_patch,
)
from tandem.view.tree import Node, ViewState, element


def _list(*keys: str, tag: str = "li") -> Node:
    return element("ul", "list", *(element(tag, k, text=k.upper()) for k in keys))


def _apply(old: Node, new: Node) -> Node:
    return apply_patch(old, Patch(0, 1, compute_diff(old, new)))


class TestComputeDiff:
    """compute_diff — minimal keyed operations."""

    def test_identical_trees_produce_no_ops(self) -> None:
        assert compute_diff(_list("a", "b"), _list("a", "b")) == ()

    def test_attribute_change(self) -> None:
        old = element("p", "p", text="a", cls="x")
        new = element("p", "p", text="b", title="t")
        ops = compute_diff(old, new)
        assert ops == (UpdateAttributes(path=(), set={"text": "b", "title": "t"}, unset=("cls",)),)

    def test_value_type_change_is_an_update(self) -> None:
        ops = compute_diff(element("input", "i", checked=1), element("input", "i", checked=True))
        [op] = ops
        assert isinstance(op, UpdateAttributes)
        assert op.set["checked"] is True

    def test_append_is_one_insert(self) -> None:
        ops = compute_diff(_list("a", "b"), _list("a", "b", "c"))
        assert len(ops) == 1
        assert isinstance(ops[0], InsertChild)
        assert ops[0].index == 2
        assert ops[0].node.key == "c"

    def test_remove_is_one_remove(self) -> None:
        ops = compute_diff(_list("a", "b", "c"), _list("a", "c"))
        assert ops == (RemoveChild(parent=(), key="b"),)

    def test_reorder_of_matched_children(self) -> None:
        ops = compute_diff(_list("a", "b", "c"), _list("c", "a", "b"))
        assert ops == (ReorderChildren(parent=(), keys=("c", "a", "b")),)

    def test_tag_change_is_remove_plus_insert(self) -> None:
        old = element("div", "r", element("p", "x", text="hi"))
        new = element("div", "r", element("section", "x", text="hi"))
        ops = compute_diff(old, new)
        assert [type(op) for op in ops] == [RemoveChild, InsertChild]
        assert _apply(old, new) == new

    def test_nested_change_addressed_by_key_path(self) -> None:
        old = element("div", "app", element("ul", "list", element("li", "a", text="one")))
        new = element("div", "app", element("ul", "list", element("li", "a", text="uno")))
        ops = compute_diff(old, new)
        assert ops == (UpdateAttributes(path=("list", "a"), set={"text": "uno"}),)

    def test_operation_order_within_a_node(self) -> None:
        old = element("ul", "list", element("li", "a"), element("li", "b"), element("li", "c"), cls="x")
        new = element("ul", "list", element("li", "d"), element("li", "c"), element("li", "a"), cls="y")
        kinds = [op.op for op in compute_diff(old, new)]
        assert kinds == ["attrs", "remove", "reorder", "insert"]

    def test_root_key_change_rejected(self) -> None:
        with pytest.raises(MalformedTree, match="root changed"):
            compute_diff(element("div", "a"), element("div", "b"))

    def test_root_tag_change_rejected(self) -> None:
        with pytest.raises(MalformedTree):
            compute_diff(element("div", "a"), element("main", "a"))

    def test_duplicate_keys_rejected(self) -> None:
        with pytest.raises(MalformedTree):
            compute_diff(_list("a"), _list("a", "a"))

    def test_deterministic(self) -> None:
        old = _list("a", "b", "c", "d")
        new = _list("d", "x", "b", "y")
        assert compute_diff(old, new) == compute_diff(old, new)


class TestApplyReconstructsTarget:
    """apply(compute_diff(T1, T2), T1) == T2."""

    @pytest.mark.parametrize(
        ("old_keys", "new_keys"),
        [
            ((), ("a", "b")),
            (("a", "b"), ()),
            (("a", "b", "c"), ("c", "b", "a")),
            (("a", "b", "c", "d"), ("d", "x", "b", "y")),
            (("a",), ("z", "a", "q")),
            (("a", "b", "c"), ("b",)),
        ],
    )
    def test_list_edits(self, old_keys: tuple[str, ...], new_keys: tuple[str, ...]) -> None:
        old, new = _list(*old_keys), _list(*new_keys)
        assert _apply(old, new) == new

    def test_deep_mixed_changes(self) -> None:
        old = element(
            "div", "app",
            element("header", "h", text="v1"),
            element("ul", "list", element("li", "a", element("span", "s", text="1")), element("li", "b")),
            element("footer", "f"),
        )
        new = element(
            "div", "app",
            element("ul", "list", element("li", "b", done=True), element("li", "a", element("span", "s", text="2"))),
            element("header", "h", text="v2"),
            element("aside", "side"),
        )
        assert _apply(old, new) == new

    def test_random_trees(self) -> None:
        rng = random.Random(1234)

        def random_tree(depth: int, key: str) -> Node:
            children: list[Node] = []
            if depth > 0:
                keys = rng.sample("abcdefgh", rng.randint(0, 5))
                children = [random_tree(depth - 1, k) for k in keys]
            attrs = {"text": rng.choice(["x", "y", "z"])} if rng.random() < 0.7 else {}
            if rng.random() < 0.3:
                attrs["cls"] = rng.choice(["on", "off"])
            tag = rng.choice(["div", "p"]) if key != "root" else "div"
            return Node(key=key, tag=tag, attrs=attrs, children=tuple(children))

        for _ in range(200):
            old, new = random_tree(3, "root"), random_tree(3, "root")
            assert _apply(old, new) == new


class TestDiffStates:
    """diff_states — versioned patches."""

    def test_versions_advance_by_one(self) -> None:
        state = ViewState(version=5, root=_list("a"))
        patch = diff_states(state, _list("a", "b"))
        assert patch.base_version == 5
        assert patch.version == 6
        assert len(patch) == 1

    def test_sequence_from_version_zero_reconstructs_final(self) -> None:
        renders = [_list(), _list("a"), _list("a", "b"), _list("b", "a"), _list("b"), _list("c", "b")]
        state = ViewState(version=0, root=renders[0])
        patches = []
        for root in renders[1:]:
            patch = diff_states(state, root)
            patches.append(patch)
            state = ViewState(version=patch.version, root=root)

        tree = renders[0]
        for patch in patches:
            tree = apply_patch(tree, patch)
        assert tree == renders[-1]
        assert patches[-1].version == len(renders) - 1

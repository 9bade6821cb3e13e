"""Patch model — node-level operations between two tree versions.

A ``Patch`` carries the ordered operations that turn the tree at
``base_version`` into the tree at ``version``.  Operations address nodes by
key path, so they stay valid regardless of sibling positions shifting
earlier in the same patch.

``apply_patch`` is the single application routine used by both the client
renderer and the tests; it rebuilds only the spine of the tree touched by
each operation and never mutates its input.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from tandem._errors import MalformedTree, ProtocolError
from tandem.view.tree import Node

if TYPE_CHECKING:
    from tandem._types import AttrValue, KeyPath, NodeKey


@dataclass(frozen=True, slots=True)
class RemoveChild:
    """Remove the child ``key`` of the node at ``parent``."""

    parent: KeyPath
    key: NodeKey
    op: Literal["remove"] = "remove"


@dataclass(frozen=True, slots=True)
class ReorderChildren:
    """Rearrange the surviving children of ``parent`` into ``keys`` order."""

    parent: KeyPath
    keys: tuple[NodeKey, ...]
    op: Literal["reorder"] = "reorder"


@dataclass(frozen=True, slots=True)
class InsertChild:
    """Insert ``node`` as child of ``parent`` at final position ``index``."""

    parent: KeyPath
    index: int
    node: Node
    op: Literal["insert"] = "insert"


@dataclass(frozen=True, slots=True)
class UpdateAttributes:
    """Set and unset attributes on the node at ``path``."""

    path: KeyPath
    set: Mapping[str, AttrValue] = field(default_factory=dict)
    unset: tuple[str, ...] = ()
    op: Literal["attrs"] = "attrs"


type PatchOp = RemoveChild | ReorderChildren | InsertChild | UpdateAttributes


@dataclass(frozen=True, slots=True)
class Patch:
    """Ordered operations from ``base_version`` to ``version``.

    Attributes:
        base_version: Version the operations apply to.
        version: Version the tree is at afterwards (``base_version + 1``).
        ops: The operations, in application order.

    """

    base_version: int
    version: int
    ops: tuple[PatchOp, ...]

    def __len__(self) -> int:
        return len(self.ops)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base": self.base_version,
            "version": self.version,
            "ops": [_op_to_dict(op) for op in self.ops],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Patch:
        return cls(
            base_version=int(data["base"]),
            version=int(data["version"]),
            ops=tuple(_op_from_dict(op) for op in data.get("ops") or ()),
        )


def _op_to_dict(op: PatchOp) -> dict[str, Any]:
    if isinstance(op, RemoveChild):
        return {"op": op.op, "parent": list(op.parent), "key": op.key}
    if isinstance(op, ReorderChildren):
        return {"op": op.op, "parent": list(op.parent), "keys": list(op.keys)}
    if isinstance(op, InsertChild):
        return {
            "op": op.op, "parent": list(op.parent),
            "index": op.index, "node": op.node.to_dict(),
        }
    return {"op": op.op, "path": list(op.path), "set": dict(op.set), "unset": list(op.unset)}


def _op_from_dict(data: Mapping[str, Any]) -> PatchOp:
    kind = data.get("op")
    try:
        if kind == "remove":
            return RemoveChild(parent=tuple(data["parent"]), key=data["key"])
        if kind == "reorder":
            return ReorderChildren(parent=tuple(data["parent"]), keys=tuple(data["keys"]))
        if kind == "insert":
            return InsertChild(
                parent=tuple(data["parent"]),
                index=int(data["index"]),
                node=Node.from_dict(data["node"]),
            )
        if kind == "attrs":
            return UpdateAttributes(
                path=tuple(data["path"]),
                set=dict(data.get("set") or {}),
                unset=tuple(data.get("unset") or ()),
            )
    except (KeyError, TypeError, ValueError) as exc:
        msg = f"malformed {kind!r} operation: {exc}"
        raise ProtocolError(msg) from exc
    msg = f"unknown patch operation {kind!r}"
    raise ProtocolError(msg)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def apply_patch(root: Node, patch: Patch) -> Node:
    """Apply every operation of ``patch`` to ``root`` and return the new tree.

    Raises:
        MalformedTree: If an operation names a node that does not exist.

    """
    for op in patch.ops:
        root = apply_op(root, op)
    return root


def apply_op(root: Node, op: PatchOp) -> Node:
    """Apply a single operation."""
    if isinstance(op, UpdateAttributes):
        return _rebuild(root, op.path, lambda n: _with_attrs(n, op.set, op.unset))
    if isinstance(op, RemoveChild):
        return _rebuild(root, op.parent, lambda n: _without_child(n, op.key))
    if isinstance(op, ReorderChildren):
        return _rebuild(root, op.parent, lambda n: _reordered(n, op.keys))
    return _rebuild(root, op.parent, lambda n: _with_child(n, op.index, op.node))


def _rebuild(node: Node, path: KeyPath, fn: Callable[[Node], Node]) -> Node:
    """Replace the node at ``path`` with ``fn(node)``, copying its ancestors."""
    if not path:
        return fn(node)
    head, rest = path[0], path[1:]
    children = list(node.children)
    for i, c in enumerate(children):
        if c.key == head:
            children[i] = _rebuild(c, rest, fn)
            return Node(node.key, node.tag, node.attrs, tuple(children))
    msg = f"no child {head!r} under {node.key!r}"
    raise MalformedTree(msg)


def _with_attrs(node: Node, set_: Mapping[str, AttrValue], unset: tuple[str, ...]) -> Node:
    attrs = dict(node.attrs)
    for name in unset:
        attrs.pop(name, None)
    attrs.update(set_)
    return Node(node.key, node.tag, attrs, node.children)


def _without_child(node: Node, key: NodeKey) -> Node:
    children = tuple(c for c in node.children if c.key != key)
    if len(children) == len(node.children):
        msg = f"cannot remove missing child {key!r} of {node.key!r}"
        raise MalformedTree(msg)
    return Node(node.key, node.tag, node.attrs, children)


def _reordered(node: Node, keys: tuple[NodeKey, ...]) -> Node:
    by_key = {c.key: c for c in node.children}
    if set(by_key) != set(keys) or len(keys) != len(by_key):
        msg = f"reorder of {node.key!r} does not cover its children exactly"
        raise MalformedTree(msg)
    return Node(node.key, node.tag, node.attrs, tuple(by_key[k] for k in keys))


def _with_child(node: Node, index: int, child: Node) -> Node:
    if not 0 <= index <= len(node.children):
        msg = f"insert index {index} out of range for {node.key!r}"
        raise MalformedTree(msg)
    children = (*node.children[:index], child, *node.children[index:])
    return Node(node.key, node.tag, node.attrs, children)

"""Tree differ — keyed structural diff between two view trees.

Compares two ``Node`` trees and produces the ordered operation list that
turns one into the other.  Like the rest of the view model it leans on
frozen nodes: equal subtrees are skipped with a single ``==``.

Children are matched by key.  A child whose key survives with the same tag
is *matched* and diffed recursively; everything else is removed from the old
side and inserted on the new side.  Matched children that changed relative
order get one ``ReorderChildren`` for the parent.  There are no moves, so a
patch applies in one pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tandem._errors import MalformedTree
from tandem.view.patch import (
    InsertChild,
    Patch,
    PatchOp,
    RemoveChild,
    ReorderChildren,
    UpdateAttributes,
)
from tandem.view.tree import same_value, validate_tree

if TYPE_CHECKING:
    from tandem._types import KeyPath
    from tandem.view.tree import Node, ViewState


def compute_diff(old: Node, new: Node) -> tuple[PatchOp, ...]:
    """Keyed structural diff of two trees.

    Returns the operations in application order.  Deterministic: the same
    pair of trees always yields the same sequence.

    Per node, operations are emitted as attributes, removals (old order),
    reorder, insertions (ascending final index), then recursion into
    matched children in their new order.

    Raises:
        MalformedTree: If either tree has duplicate sibling keys, or the
            roots differ in key or tag.

    """
    validate_tree(old)
    validate_tree(new)
    if old.key != new.key or old.tag != new.tag:
        msg = (
            f"root changed from <{old.tag} key={old.key!r}> "
            f"to <{new.tag} key={new.key!r}>"
        )
        raise MalformedTree(msg)

    ops: list[PatchOp] = []
    _diff_node(old, new, (), ops)
    return tuple(ops)


def diff_states(old: ViewState, new_root: Node) -> Patch:
    """Diff ``old`` against a freshly rendered tree, producing the next Patch."""
    return Patch(
        base_version=old.version,
        version=old.version + 1,
        ops=compute_diff(old.root, new_root),
    )


def _diff_node(old: Node, new: Node, path: KeyPath, ops: list[PatchOp]) -> None:
    if old == new:
        return

    _diff_attrs(old, new, path, ops)

    old_keys = [c.key for c in old.children]
    new_by_key = {c.key: c for c in new.children}
    old_by_key = {c.key: c for c in old.children}

    def matched(key: str) -> bool:
        other = new_by_key.get(key)
        return other is not None and other.tag == old_by_key[key].tag

    # Removals in old order
    for key in old_keys:
        if not matched(key):
            ops.append(RemoveChild(parent=path, key=key))

    # Surviving children, in old and new relative order
    kept_old = [k for k in old_keys if matched(k)]
    kept_new = [c.key for c in new.children if c.key in old_by_key and matched(c.key)]
    if kept_old != kept_new:
        ops.append(ReorderChildren(parent=path, keys=tuple(kept_new)))

    # Insertions at final index, ascending
    for index, c in enumerate(new.children):
        if c.key in old_by_key and matched(c.key):
            continue
        ops.append(InsertChild(parent=path, index=index, node=c))

    for key in kept_new:
        _diff_node(old_by_key[key], new_by_key[key], (*path, key), ops)


def _diff_attrs(old: Node, new: Node, path: KeyPath, ops: list[PatchOp]) -> None:
    changed = {
        name: new.attrs[name]
        for name in sorted(new.attrs)
        if name not in old.attrs or not same_value(old.attrs[name], new.attrs[name])
    }
    removed = tuple(name for name in sorted(old.attrs) if name not in new.attrs)
    if changed or removed:
        ops.append(UpdateAttributes(path=path, set=changed, unset=removed))

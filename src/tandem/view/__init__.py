"""View layer — immutable node trees, patches, and the keyed differ."""

from tandem.view.differ import compute_diff, diff_states
from tandem.view.patch import (
    InsertChild,
    Patch,
    PatchOp,
    RemoveChild,
    ReorderChildren,
    UpdateAttributes,
    apply_patch,
)
from tandem.view.tree import Node, ViewState, element, validate_tree

__all__ = [
    "InsertChild",
    "Node",
    "Patch",
    "PatchOp",
    "RemoveChild",
    "ReorderChildren",
    "UpdateAttributes",
    "ViewState",
    "apply_patch",
    "compute_diff",
    "diff_states",
    "element",
    "validate_tree",
]

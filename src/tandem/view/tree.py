"""View tree — the immutable node model shared by server and client.

A view is a tree of frozen ``Node`` objects.  Each node carries a ``key``
that is unique among its siblings; the differ matches children by key, and
patches address nodes by the chain of keys from the root (a ``KeyPath``).

``ViewState`` pairs a tree with the version it was rendered at.  The server
owns one per session and replaces it wholesale on every commit; nothing ever
mutates a node in place.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tandem._errors import MalformedTree

if TYPE_CHECKING:
    from tandem._types import AttrValue, KeyPath, NodeKey


@dataclass(frozen=True, slots=True)
class Node:
    """A single element of the view tree.

    Attributes:
        key: Identity among siblings.  Stable across renders for the same
            logical element.
        tag: Element name (e.g. ``"div"``, ``"button"``).
        attrs: Attribute mapping.  ``text`` holds the element's text content.
        children: Ordered child nodes.

    """

    key: NodeKey
    tag: str
    attrs: Mapping[str, AttrValue] = field(default_factory=dict)
    children: tuple[Node, ...] = ()

    def __post_init__(self) -> None:
        # Freeze the attribute mapping so the node is immutable end to end.
        if not isinstance(self.attrs, MappingProxyType):
            object.__setattr__(self, "attrs", MappingProxyType(dict(self.attrs)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return (
            self.key == other.key
            and self.tag == other.tag
            and self.attrs.keys() == other.attrs.keys()
            and all(same_value(v, other.attrs[k]) for k, v in self.attrs.items())
            and self.children == other.children
        )

    def __hash__(self) -> int:
        return hash((self.key, self.tag, tuple(sorted(self.attrs.items())), self.children))

    def child(self, key: NodeKey) -> Node | None:
        """Return the direct child with ``key``, or None."""
        for node in self.children:
            if node.key == key:
                return node
        return None

    def find(self, path: KeyPath) -> Node | None:
        """Resolve a key path relative to this node (empty path is self)."""
        node: Node | None = self
        for key in path:
            if node is None:
                return None
            node = node.child(key)
        return node

    def walk(self, path: KeyPath = ()) -> Iterator[tuple[KeyPath, Node]]:
        """Yield ``(path, node)`` for this node and every descendant, depth first."""
        yield path, self
        for node in self.children:
            yield from node.walk((*path, node.key))

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "key": self.key,
            "tag": self.tag,
            "attrs": dict(self.attrs),
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Node:
        """Rebuild a node from :meth:`to_dict` output."""
        return cls(
            key=str(data["key"]),
            tag=str(data["tag"]),
            attrs=dict(data.get("attrs") or {}),
            children=tuple(cls.from_dict(c) for c in data.get("children") or ()),
        )


def same_value(a: AttrValue, b: AttrValue) -> bool:
    """Attribute equality that tells ``1``, ``1.0`` and ``True`` apart.

    They render differently in HTML, so a change between them must produce
    a patch.
    """
    return type(a) is type(b) and a == b


def element(tag: str, key: NodeKey, *children: Node, **attrs: AttrValue) -> Node:
    """Convenience constructor used by components.

    Example::

        element("ul", "todos", *(element("li", t.id, text=t.title) for t in todos))

    """
    return Node(key=key, tag=tag, attrs=attrs, children=children)


def validate_tree(root: Node) -> None:
    """Check that sibling keys are unique throughout the tree.

    Raises:
        MalformedTree: On the first duplicate key found.

    """
    for path, node in root.walk():
        seen: set[str] = set()
        for c in node.children:
            if c.key in seen:
                where = "/".join(path) or "<root>"
                msg = f"duplicate child key {c.key!r} under {where}"
                raise MalformedTree(msg)
            seen.add(c.key)


@dataclass(frozen=True, slots=True)
class ViewState:
    """A rendered tree at a specific version.

    Attributes:
        version: Monotonic version number (0 for the first render).
        root: The tree.

    """

    version: int
    root: Node

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "root": self.root.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ViewState:
        return cls(version=int(data["version"]), root=Node.from_dict(data["root"]))

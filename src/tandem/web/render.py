"""Server-side HTML rendering of view trees.

Attribute conventions shared with the browser client:

- ``text`` becomes the element's leading text content.
- ``on_<event>`` (``on_click="increment"``) becomes
  ``data-tandem-on-<event>``; the client turns matching DOM events into
  ``Event(name=<handler>, target=<key>)``.
- ``True`` renders a bare attribute, ``False`` and ``None`` are omitted.
- Every element carries ``data-key`` so patches can address it.
"""

from __future__ import annotations

import json
from html import escape
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tandem._types import AttrValue
    from tandem.view.tree import Node, ViewState

TEXT_ATTR = "text"
EVENT_PREFIX = "on_"

_VOID = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})


def render_html(node: Node) -> str:
    """Render a tree to an HTML fragment."""
    parts: list[str] = []
    _render(node, parts)
    return "".join(parts)


def _render(node: Node, out: list[str]) -> None:
    out.append(f'<{node.tag} data-key="{escape(node.key)}"')
    for name in sorted(node.attrs):
        if name == TEXT_ATTR:
            continue
        rendered = _attribute(name, node.attrs[name])
        if rendered:
            out.append(" " + rendered)
    out.append(">")
    if node.tag in _VOID:
        return
    text = node.attrs.get(TEXT_ATTR)
    if text is not None:
        out.append(escape(str(text), quote=False))
    for child in node.children:
        _render(child, out)
    out.append(f"</{node.tag}>")


def _attribute(name: str, value: AttrValue) -> str:
    if value is None or value is False:
        return ""
    if name.startswith(EVENT_PREFIX):
        name = "data-tandem-on-" + name[len(EVENT_PREFIX):]
    else:
        name = name.replace("_", "-")
    if value is True:
        return name
    return f'{name}="{escape(str(value))}"'


def render_page(state: ViewState, session_id: str, *, title: str = "tandem") -> str:
    """Render a complete document for a new session.

    The initial tree is rendered as HTML and also embedded as JSON, so the
    browser client starts at the same version the server holds.

    """
    payload = json.dumps(state.to_dict(), separators=(",", ":")).replace("</", "<\\/")
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{escape(title)}</title>\n"
        "</head>\n<body>\n"
        f'<div id="tandem-root" data-tandem-session="{escape(session_id)}" '
        f'data-tandem-version="{state.version}">'
        f"{render_html(state.root)}</div>\n"
        f'<script type="application/json" id="tandem-state">{payload}</script>\n'
        "</body>\n</html>\n"
    )

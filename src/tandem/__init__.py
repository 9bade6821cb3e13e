"""Tandem — server-push UI sessions for Python 3.14t.

The server holds the authoritative view tree of every client view, pushes
minimal keyed patches down a persistent channel, and recovers from dropped
connections with a supervised reconnect loop and a full-tree resync.

Quick start::

    from tandem import element

    class Counter:
        def __init__(self):
            self.count = 0

        def render(self):
            return element(
                "div", "counter",
                element("span", "value", text=str(self.count)),
                element("button", "inc", text="+", on_click="increment"),
            )

        def handle_event(self, event):
            if event.name == "increment":
                self.count += 1

    # tandem serve counter:Counter

Layers::

    tandem.view           Node trees, patches, the keyed differ
    tandem.sync           Channel, emitter, supervisor, session host
    tandem.client         Client renderer and reconnecting session
    tandem.web            Chirp integration (SSE, overlay, routes)
    tandem.observability  Event log and collector

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "ClientSession",
    "ConnectionStatus",
    "Event",
    "Node",
    "SessionHost",
    "SyncConfig",
    "ViewState",
    "__version__",
    "create_app",
    "element",
    "serve",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import tandem`` fast while providing a clean top-level API.
    """
    if name == "SyncConfig":
        from tandem.config import SyncConfig

        return SyncConfig

    if name == "ConnectionStatus":
        from tandem._types import ConnectionStatus

        return ConnectionStatus

    if name in ("Node", "ViewState", "element"):
        from tandem.view import tree

        return getattr(tree, name)

    if name == "Event":
        from tandem.sync.messages import Event

        return Event

    if name == "SessionHost":
        from tandem.sync.host import SessionHost

        return SessionHost

    if name == "ClientSession":
        from tandem.client.session import ClientSession

        return ClientSession

    if name == "create_app":
        from tandem.web.app import create_app

        return create_app

    if name == "serve":
        from tandem.web.app import serve

        return serve

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)

"""Sync router — registers Tandem's HTTP endpoints on a Chirp app.

Endpoints:
    ``/``                  Page: creates a session, server-renders version 0
    ``/__tandem/stream``   SSE: one browser connection for a session
    ``/__tandem/send``     POST: one client frame (event, ack, resync request)
    ``/__tandem/stats``    JSON: session counts and event log summary

The handlers are thin.  The logic lives in ``open_page``, ``open_stream``,
and ``deliver`` so it can be exercised without an HTTP server.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

from tandem._errors import ProtocolError, TransportClosed
from tandem.sync.messages import AckMessage, EventMessage, Hello, ResyncRequest, decode_message
from tandem.web.render import render_page
from tandem.web.transport import SSETransport

if TYPE_CHECKING:
    from chirp import App, Request

    from tandem.observability.collector import SyncCollector
    from tandem.sync.host import SessionHost
    from tandem.web.transport import HttpAcceptor

PAGE_ENDPOINT = "/"
STREAM_ENDPOINT = "/__tandem/stream"
SEND_ENDPOINT = "/__tandem/send"
STATS_ENDPOINT = "/__tandem/stats"

# Frames a browser may POST.  Hellos come from the stream request itself.
_CLIENT_FRAMES = (EventMessage, AckMessage, ResyncRequest)


class SyncRouter:
    """Wires a ``SessionHost`` to a Chirp ``App``.

    Args:
        app: The Chirp application.
        host: Session host running the components.
        acceptor: Acceptor the host's channel accepts transports from.
        collector: Observability collector for the stats endpoint.
        title: Document title for rendered pages.

    """

    def __init__(
        self,
        app: App,
        host: SessionHost,
        acceptor: HttpAcceptor,
        *,
        collector: SyncCollector | None = None,
        title: str = "tandem",
    ) -> None:
        self._app = app
        self._host = host
        self._acceptor = acceptor
        self._collector = collector
        self._title = title

    def register_all(self, page_path: str = PAGE_ENDPOINT) -> None:
        self.register_page(page_path)
        self.register_stream_endpoint()
        self.register_send_endpoint()
        self.register_stats_endpoint()

    # ----- Core operations -----

    def open_page(self) -> tuple[str, str]:
        """Start a new session and render its first document.

        Returns:
            ``(session_id, html)``.

        """
        hosted = self._host.create()
        self._host.start(hosted)
        task = hosted.task
        if task is not None:
            task.add_done_callback(lambda _t: self._acceptor.forget(hosted.session_id))
        html = render_page(hosted.emitter.state, hosted.session_id, title=self._title)
        return hosted.session_id, html

    def open_stream(self, session_id: str, version: int) -> SSETransport | None:
        """Accept a browser stream for a live session.

        Returns:
            The new transport, or None when the session is unknown.

        """
        if self._host.get(session_id) is None:
            return None
        transport = SSETransport(session_id)
        transport.feed(Hello(session_id, version))
        self._acceptor.offer(transport)
        return transport

    def deliver(self, session_id: str, raw: str) -> tuple[int, str]:
        """Route one POSTed frame to the session's live transport.

        Returns:
            ``(status, body)`` for the HTTP response.

        """
        try:
            message = decode_message(raw)
        except ProtocolError as exc:
            return 400, str(exc)
        if not isinstance(message, _CLIENT_FRAMES):
            return 400, f"unexpected frame {type(message).__name__}"
        transport = self._acceptor.current(session_id)
        if transport is None:
            return 410, f"no live connection for session {session_id}"
        try:
            transport.feed(message)
        except TransportClosed as exc:
            return 410, str(exc)
        return 202, "accepted"

    def stats(self) -> dict[str, Any]:
        sessions = self._host.registry.snapshot()
        by_status: dict[str, int] = {}
        for hosted in sessions.values():
            status = str(hosted.status)
            by_status[status] = by_status.get(status, 0) + 1
        payload: dict[str, Any] = {"sessions": len(sessions), "by_status": by_status}
        if self._collector is not None:
            payload["event_log"] = self._collector.log.stats()
        return payload

    # ----- Route registration -----

    def register_page(self, path: str = PAGE_ENDPOINT) -> None:
        """Register the page route that starts a session per request."""

        async def page_handler(request: Request) -> Any:
            from chirp.http.response import Response

            _session_id, html = self.open_page()
            return Response(body=html, status=200, content_type="text/html; charset=utf-8")

        page_handler.__name__ = "tandem_page"
        page_handler.__qualname__ = "SyncRouter.tandem_page"

        self._app.route(path, name="tandem:page")(page_handler)

    def register_stream_endpoint(self) -> None:
        """Register the ``/__tandem/stream`` SSE endpoint.

        Clients connect with ``session`` and ``version`` query parameters.
        The route returns a Chirp ``EventStream`` fed by the session's
        channel; unknown sessions get a 410 so the browser stops retrying.

        """
        from chirp import EventStream

        async def stream_handler(request: Request) -> Any:
            from chirp.http.response import Response

            session_id = request.query.get("session", "")
            try:
                version = int(request.query.get("version", "-1"))
            except ValueError:
                version = -1

            transport = self.open_stream(session_id, version)
            if transport is None:
                return Response(body="unknown session", status=410, content_type="text/plain")
            return EventStream(transport.events())

        stream_handler.__name__ = "tandem_stream"
        stream_handler.__qualname__ = "SyncRouter.tandem_stream"

        self._app.route(STREAM_ENDPOINT, name="tandem:stream")(stream_handler)

    def register_send_endpoint(self) -> None:
        """Register the ``/__tandem/send`` endpoint for client frames."""

        async def send_handler(request: Request) -> Any:
            from chirp.http.response import Response

            form = await request.form()
            session_id = form.get("session", "")
            raw = form.get("frame", "")
            status, body = self.deliver(session_id, raw)
            if status >= 400:
                print(f"  Rejected frame for {session_id}: {body}", file=sys.stderr)
            return Response(body=body, status=status, content_type="text/plain")

        send_handler.__name__ = "tandem_send"
        send_handler.__qualname__ = "SyncRouter.tandem_send"

        self._app.route(SEND_ENDPOINT, methods=["POST"], name="tandem:send")(send_handler)

    def register_stats_endpoint(self) -> None:
        """Register the ``/__tandem/stats`` JSON endpoint."""

        async def stats_handler(request: Request) -> Any:
            from chirp.http.response import Response

            return Response(
                body=json.dumps(self.stats(), indent=2),
                status=200,
                content_type="application/json",
            )

        stats_handler.__name__ = "tandem_stats"
        stats_handler.__qualname__ = "SyncRouter.tandem_stats"

        self._app.route(STATS_ENDPOINT, name="tandem:stats")(stats_handler)

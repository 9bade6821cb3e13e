"""Web integration — serves live sessions through Chirp.

Browser connections use Server-Sent Events for server-to-client frames and
form POSTs for client-to-server frames.
"""

from tandem.web.overlay import client_script, reconnect_overlay_middleware
from tandem.web.render import render_html, render_page
from tandem.web.transport import HttpAcceptor, SSETransport

__all__ = [
    "HttpAcceptor",
    "SSETransport",
    "client_script",
    "reconnect_overlay_middleware",
    "render_html",
    "render_page",
]

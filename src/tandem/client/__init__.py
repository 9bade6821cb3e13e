"""Client side — the renderer, its input queue, and the reconnecting session."""

from tandem.client.pending import PendingInputQueue
from tandem.client.renderer import ClientRenderer, PatchOutcome
from tandem.client.session import ClientSession

__all__ = ["ClientRenderer", "ClientSession", "PatchOutcome", "PendingInputQueue"]

"""Tandem application — a Chirp app serving live component sessions.

``create_app`` wires a component factory, a session host, and the sync
router into a Chirp ``App``.  ``serve`` loads configuration, prints the
banner, and runs it.
"""

import importlib
import importlib.util
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

from tandem._errors import ConfigError
from tandem.config import SyncConfig
from tandem.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from chirp import App

    from tandem.observability.collector import SyncCollector
    from tandem.sync.host import Component, SessionHost
    from tandem.web.routes import SyncRouter


def resolve_target(target: str, root: Path) -> Callable[[], Component]:
    """Resolve a ``module:attr`` component factory.

    ``module`` is looked up as ``<root>/<module>.py`` first, then as an
    importable module name.

    Raises:
        ConfigError: If the target is malformed, missing, or not callable.

    """
    module_part, _, attr = target.partition(":")
    if not module_part or not attr:
        msg = f"target {target!r} must look like module:attr"
        raise ConfigError(msg)

    py_file = root / f"{module_part.replace('.', '/')}.py"
    try:
        if py_file.is_file():
            module_name = f"tandem_app_{module_part.replace('.', '_')}"
            spec = importlib.util.spec_from_file_location(module_name, py_file)
            if spec is None or spec.loader is None:
                msg = f"target {target!r}: failed to load {py_file}"
                raise ConfigError(msg)
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(module_part)
    except ConfigError:
        raise
    except Exception as exc:
        msg = f"target {target!r}: cannot import {module_part}: {exc}"
        raise ConfigError(msg) from exc

    factory = getattr(module, attr, None)
    if not callable(factory):
        msg = f"target {target!r}: {attr} is not callable"
        raise ConfigError(msg)
    return factory


def create_app(
    factory: Callable[[], Component],
    config: SyncConfig | None = None,
    *,
    collector: SyncCollector | None = None,
    debug: bool = False,
) -> tuple[App, SessionHost, SyncRouter]:
    """Create a Chirp App serving ``factory``'s component, one session per page load.

    Returns:
        The app, the session host, and the router (for tests and embedding).

    """
    from chirp import App, AppConfig

    from tandem.sync.host import SessionHost
    from tandem.web.overlay import reconnect_overlay_middleware
    from tandem.web.routes import SyncRouter
    from tandem.web.transport import HttpAcceptor

    cfg = config if config is not None else SyncConfig()
    app = App(config=AppConfig(debug=debug, host=cfg.host, port=cfg.port))

    acceptor = HttpAcceptor()
    host = SessionHost(factory, acceptor, config=cfg, collector=collector)
    router = SyncRouter(app, host, acceptor, collector=collector)
    router.register_all()

    app.add_middleware(reconnect_overlay_middleware(cfg))

    @app.on_shutdown
    async def _close_sessions() -> None:
        await host.shutdown()

    return app, host, router


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def serve(target: str, root: str | Path = ".", **kwargs: object) -> None:
    """Serve a component over HTTP with live sessions.

    Runs a single worker: sessions live in process memory, so a browser
    must reconnect to the process that owns its session.

    Args:
        target: ``module:attr`` naming a zero-argument component factory.
        root: Project root (for ``tandem.yaml`` and module lookup).
        **kwargs: Override SyncConfig fields.

    """
    from tandem.banner import print_banner
    from tandem.observability import EventLog, SyncCollector

    config = load_config(Path(root), **kwargs)
    t0 = time.perf_counter()

    factory = resolve_target(target, config.root)
    collector = SyncCollector(EventLog())
    app, _host, _router = create_app(factory, config, collector=collector)

    load_ms = (time.perf_counter() - t0) * 1000
    print_banner(config, target, load_ms=load_ms)

    # Pass the collector as the server's lifecycle_collector so connection
    # events land in the same EventLog as session events.
    app.run(host=config.host, port=config.port, lifecycle_collector=collector)

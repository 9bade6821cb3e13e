"""Browser client and reconnect overlay — injected into HTML responses.

Injects a script that turns a server-rendered page into a live session:

1. Opens an EventSource on ``/__tandem/stream`` for the page's session
2. Applies ``patch`` events to the DOM by key path, buffering out-of-order
   patches and asking for a resync when a gap cannot be closed
3. Adopts ``resync`` events wholesale, then replays queued input
4. Turns DOM events on ``data-tandem-on-*`` elements into sequenced events,
   POSTed in capture order, and queued while not connected
5. On connection loss retries with exponential backoff (ceiling, jitter,
   attempt limit) and shows the reconnect overlay: a small banner while
   reconnecting, a blocking panel with Retry once attempts run out, and a
   Reload prompt once the grace period has expired
"""

from __future__ import annotations

import json
from dataclasses import replace
from typing import TYPE_CHECKING

from tandem.config import SyncConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chirp.http.request import Request
    from chirp.http.response import Response, SSEResponse, StreamingResponse
    from chirp.middleware.protocol import Next

    type AnyResponse = Response | StreamingResponse | SSEResponse


_CLIENT_SCRIPT = """\
<script data-tandem-client>
(function() {
  var root = document.getElementById('tandem-root');
  if (!root) return;
  var CFG = __TANDEM_CONFIG__;
  var session = root.getAttribute('data-tandem-session');
  var state = JSON.parse(document.getElementById('tandem-state').textContent);
  var version = state.version, acked = version;
  var status = 'disconnected', attempt = 0, prevDelay = 0;
  var seq = 0, pending = [], sent = [], outbox = [], flushing = false;
  var buffer = {}, holding = false;
  var src = null, timer = null, graceTimer = null;

  // ----- transport -----
  function connect() {
    timer = null;
    var opened = false;
    src = new EventSource('/__tandem/stream?session=' + encodeURIComponent(session)
      + '&version=' + version);
    src.onopen = function() { opened = true; connected(); };
    src.onerror = function() {
      if (src) src.close();
      src = null;
      if (opened) lost(); else failed();
    };
    src.addEventListener('patch', function(e) { onPatch(JSON.parse(e.data).patch); });
    src.addEventListener('resync', function(e) { onResync(JSON.parse(e.data)); });
  }
  function post(frame) {
    var body = new URLSearchParams();
    body.set('session', session);
    body.set('frame', JSON.stringify(frame));
    return fetch('/__tandem/send', {method: 'POST', body: body}).then(function(r) {
      if (!r.ok) throw new Error('tandem: send failed (' + r.status + ')');
    });
  }
  function enqueue(frame) { outbox.push(frame); flush(); }
  function flush() {
    if (flushing || !outbox.length || status !== 'connected') return;
    flushing = true;
    var frame = outbox[0];
    post(frame).then(function() {
      if (outbox[0] === frame) outbox.shift();
      if (frame.kind === 'event') {
        sent.push(frame);
        if (sent.length > CFG.pending_capacity) sent.shift();
      }
      flushing = false;
      flush();
    }, function() {
      flushing = false;
      if (src) src.close();
      src = null;
      lost();
    });
  }
  function ack() {
    if (version > acked) { acked = version; enqueue({kind: 'ack', version: version}); }
  }

  // ----- supervisor -----
  function setStatus(s, n) { status = s; attempt = n; overlay(); }
  function delay(n) {
    var nominal = Math.min(CFG.backoff_ceiling, CFG.backoff_base * Math.pow(CFG.backoff_factor, n - 1));
    var spread = nominal * CFG.backoff_jitter;
    var d = Math.min(CFG.backoff_ceiling, Math.max(prevDelay, nominal - spread + spread * Math.random()));
    prevDelay = d;
    return d;
  }
  function schedule(n) { timer = setTimeout(connect, delay(n) * 1000); }
  function connected() {
    if (graceTimer) { clearTimeout(graceTimer); graceTimer = null; }
    prevDelay = 0;
    setStatus('connected', 0);
    if (!holding) replay();
    flush();
  }
  function lost() {
    if (status !== 'connected') return;
    var unsent = outbox.filter(function(f) { return f.kind === 'event'; });
    pending = sent.concat(unsent, pending);
    sent = []; outbox = [];
    holding = true;
    setStatus('reconnecting', 1);
    schedule(1);
  }
  function failed() {
    if (attempt >= CFG.max_attempts) {
      setStatus('disconnected', attempt);
      graceTimer = setTimeout(function() { setStatus('terminated', 0); }, CFG.grace_period * 1000);
      return;
    }
    setStatus('reconnecting', attempt + 1);
    schedule(attempt);
  }
  function retry() {
    if (status !== 'disconnected') return;
    if (graceTimer) { clearTimeout(graceTimer); graceTimer = null; }
    prevDelay = 0;
    setStatus('reconnecting', 1);
    schedule(1);
  }

  // ----- input -----
  function capture(name, target, payload) {
    var ev = {kind: 'event', name: name, target: target, payload: payload || {}, seq: ++seq};
    if (status === 'connected' && !holding && !pending.length) { enqueue(ev); return; }
    if (pending.length >= CFG.pending_capacity) {
      console.warn('tandem: input queue full, dropped ' + name);
      return;
    }
    pending.push(ev);
  }
  function replay() {
    holding = false;
    var events = pending;
    pending = [];
    for (var i = 0; i < events.length; i++) enqueue(events[i]);
  }
  ['click', 'input', 'change', 'submit'].forEach(function(type) {
    root.addEventListener(type, function(e) {
      var el = e.target.closest && e.target.closest('[data-tandem-on-' + type + ']');
      if (!el || !root.contains(el)) return;
      if (type === 'submit') e.preventDefault();
      var payload = {};
      if ('value' in el) payload.value = el.value;
      capture(el.getAttribute('data-tandem-on-' + type), el.getAttribute('data-key'), payload);
    });
  });

  // ----- patches -----
  function onPatch(p) {
    if (p.version <= version) return;
    if (p.base !== version) {
      if (buffer[p.base]) return;
      if (Object.keys(buffer).length >= CFG.reorder_window) return resync();
      buffer[p.base] = p;
      return;
    }
    if (!apply(p)) return resync();
    while (buffer[version]) {
      var next = buffer[version];
      delete buffer[version];
      if (!apply(next)) return resync();
    }
    ack();
  }
  function apply(p) {
    try { applyOps(p.ops); } catch (err) { console.warn(err); return false; }
    version = p.version;
    return true;
  }
  function resync() {
    buffer = {};
    enqueue({kind: 'resync-request', version: version});
  }
  function onResync(msg) {
    if (msg.state.version < version) return;
    root.innerHTML = '';
    root.appendChild(build(msg.state.root));
    version = msg.state.version;
    for (var base in buffer) if (+base < version) delete buffer[base];
    while (buffer[version]) {
      var next = buffer[version];
      delete buffer[version];
      if (!apply(next)) { resync(); break; }
    }
    pending = pending.filter(function(ev) { return ev.seq > msg.events; });
    ack();
    if (holding) replay();
  }

  // ----- DOM -----
  function childByKey(el, key) {
    for (var c = el.firstElementChild; c; c = c.nextElementSibling)
      if (c.getAttribute('data-key') === key) return c;
    return null;
  }
  function find(path) {
    var el = root.firstElementChild;
    for (var i = 0; el && i < path.length; i++) el = childByKey(el, path[i]);
    if (!el) throw new Error('tandem: no node at /' + path.join('/'));
    return el;
  }
  function attrName(k) {
    return k.indexOf('on_') === 0 ? 'data-tandem-on-' + k.slice(3) : k.replace(/_/g, '-');
  }
  function setText(el, text) {
    var first = el.firstChild;
    if (first && first.nodeType === 3) {
      if (text === null) el.removeChild(first); else first.data = text;
    } else if (text !== null) {
      el.insertBefore(document.createTextNode(text), first);
    }
  }
  function setAttrs(el, set, unset) {
    for (var i = 0; i < unset.length; i++) {
      if (unset[i] === 'text') setText(el, null); else el.removeAttribute(attrName(unset[i]));
    }
    for (var k in set) {
      var v = set[k];
      if (k === 'text') { setText(el, v === null ? null : String(v)); continue; }
      var name = attrName(k);
      if (v === null || v === false) el.removeAttribute(name);
      else el.setAttribute(name, v === true ? '' : String(v));
      if (name === 'value' && 'value' in el) el.value = v === null ? '' : String(v);
    }
  }
  function build(node) {
    var el = document.createElement(node.tag);
    el.setAttribute('data-key', node.key);
    setAttrs(el, node.attrs, []);
    for (var i = 0; i < node.children.length; i++) el.appendChild(build(node.children[i]));
    return el;
  }
  function applyOps(ops) {
    for (var i = 0; i < ops.length; i++) {
      var op = ops[i], parent;
      if (op.op === 'attrs') {
        setAttrs(find(op.path), op.set, op.unset);
      } else if (op.op === 'remove') {
        parent = find(op.parent);
        var gone = childByKey(parent, op.key);
        if (!gone) throw new Error('tandem: no child ' + op.key);
        parent.removeChild(gone);
      } else if (op.op === 'reorder') {
        parent = find(op.parent);
        for (var j = 0; j < op.keys.length; j++) {
          var c = childByKey(parent, op.keys[j]);
          if (!c) throw new Error('tandem: no child ' + op.keys[j]);
          parent.appendChild(c);
        }
      } else if (op.op === 'insert') {
        parent = find(op.parent);
        parent.insertBefore(build(op.node), parent.children[op.index] || null);
      }
    }
  }

  // ----- overlay -----
  function overlay() {
    var el = document.getElementById('tandem-overlay');
    if (status === 'connected') { if (el) el.remove(); return; }
    if (!el) {
      el = document.createElement('div');
      el.id = 'tandem-overlay';
      document.body.appendChild(el);
    }
    el.innerHTML = '';
    var blocking = status !== 'reconnecting';
    el.style.cssText = blocking
      ? 'position:fixed;inset:0;background:rgba(0,0,0,0.45);display:flex;'
        + 'align-items:center;justify-content:center;z-index:99999'
      : 'position:fixed;top:1rem;right:1rem;z-index:99999';
    var panel = document.createElement('div');
    panel.style.cssText = 'background:#1e1e1e;color:#e0e0e0;border:1px solid #e0a030;'
      + 'border-radius:8px;padding:0.75rem 1.25rem;font-family:system-ui,sans-serif;'
      + 'font-size:0.9rem;box-shadow:0 4px 24px rgba(0,0,0,0.4)';
    var text = document.createElement('span');
    panel.appendChild(text);
    if (status === 'reconnecting') {
      text.textContent = 'Reconnecting\\u2026 attempt ' + attempt + ' of ' + CFG.max_attempts;
    } else if (status === 'disconnected') {
      text.textContent = 'Connection lost. ';
      panel.appendChild(button('Retry', retry));
    } else if (status === 'terminated') {
      text.textContent = 'This session has ended. ';
      panel.appendChild(button('Reload', function() { location.reload(); }));
    }
    el.appendChild(panel);
  }
  function button(label, onclick) {
    var b = document.createElement('button');
    b.textContent = label;
    b.style.cssText = 'margin-left:0.75rem;padding:0.25rem 0.75rem;background:#3a2a10;'
      + 'border:1px solid #e0a030;border-radius:4px;color:#e0e0e0;cursor:pointer';
    b.onclick = onclick;
    return b;
  }

  connect();
})();
</script>
"""


def client_script(config: SyncConfig | None = None) -> str:
    """Return the client ``<script>`` with ``config`` baked in."""
    cfg = config if config is not None else SyncConfig()
    settings = {
        "backoff_base": cfg.backoff_base,
        "backoff_factor": cfg.backoff_factor,
        "backoff_ceiling": cfg.backoff_ceiling,
        "backoff_jitter": cfg.backoff_jitter,
        "max_attempts": cfg.max_attempts,
        "grace_period": cfg.grace_period,
        "pending_capacity": cfg.pending_capacity,
        "reorder_window": cfg.reorder_window,
    }
    return _CLIENT_SCRIPT.replace("__TANDEM_CONFIG__", json.dumps(settings))


def reconnect_overlay_middleware(
    config: SyncConfig | None = None,
) -> Callable[[Request, Next], Awaitable[AnyResponse]]:
    """Build Chirp middleware that injects the client script into HTML responses.

    Only modifies responses with ``text/html`` content type. Injects the
    script tag just before ``</body>`` (or appends if no closing tag).

    """
    script = client_script(config)

    async def middleware(request: Request, next: Next) -> AnyResponse:
        response = await next(request)

        # Streaming and SSE responses have no body to rewrite
        if not hasattr(response, "body") or not hasattr(response, "content_type"):
            return response

        if "text/html" not in response.content_type:
            return response

        body = response.body
        if isinstance(body, bytes):
            body = body.decode("utf-8")

        if "</body>" in body:
            body = body.replace("</body>", script + "</body>", 1)
        elif "</html>" in body:
            body = body.replace("</html>", script + "</html>", 1)
        else:
            body += script

        return replace(response, body=body)

    return middleware

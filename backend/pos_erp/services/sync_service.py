# Overview: "Data changed" broadcast fired after saves, payments and register open/close.

"""
Global sync signal.

Listeners (reporting dashboards, websocket bridges) connect to
`data_changed` and refresh on every send. The signal carries a short reason
string and the new revision; a per-app revision counter lets polling
clients notice changes through GET /api/sync/revision.
"""

from __future__ import annotations

from blinker import Namespace
from flask import current_app

_signals = Namespace()

data_changed = _signals.signal("data-changed")

_REVISION_KEY = "pos_erp.sync_revision"


def current_revision() -> int:
    return current_app.extensions.get(_REVISION_KEY, 0)


def trigger_sync(reason: str) -> int:
    """Bump the revision and notify listeners. Listener errors are logged, not raised."""
    app = current_app._get_current_object()
    revision = app.extensions.get(_REVISION_KEY, 0) + 1
    app.extensions[_REVISION_KEY] = revision
    try:
        data_changed.send(app, reason=reason, revision=revision)
    except Exception:
        app.logger.exception("Sync listener failed for %s", reason)
    return revision

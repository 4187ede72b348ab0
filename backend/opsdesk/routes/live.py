# Overview: Server-Sent Events routes that push live views to operator screens.

"""
Each stream holds one ChangeBus subscription for as long as the client is
connected. The first frame is the current view; every later frame is the
whole recomputed view after a write. Frames are `data: <json>`; idle
periods emit `: ping` comments every LIVE_KEEPALIVE_SECONDS.

`?limit=N` closes the stream after N data frames (polling clients, tests).
"""

import json
import queue

from flask import Blueprint, Response, jsonify, request, current_app, stream_with_context

from ..decorators import require_admin
from ..live import records
from ..services import view_service
from ..services.change_bus import split_path
from ..services.paths import COLLECTIONS
from ..services.record_store import StoreError


live_bp = Blueprint("live", __name__, url_prefix="/api/live")


def _limit_arg():
    raw = request.args.get("limit")
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        return None
    return limit if limit > 0 else None


def _stream(path: str, projector):
    frames: queue.Queue = queue.Queue()
    keepalive = float(current_app.config.get("LIVE_KEEPALIVE_SECONDS", 15))
    limit = _limit_arg()
    logger = current_app.logger

    try:
        subscription = view_service.watch(records, path, projector, frames.put)
    except StoreError:
        logger.exception("Failed to open live stream on '%s'", path)
        return jsonify({"error": "Record store unavailable"}), 503

    def generate():
        sent = 0
        try:
            while True:
                try:
                    value = frames.get(timeout=keepalive)
                except queue.Empty:
                    if not subscription.active:
                        break
                    yield ": ping\n\n"
                    continue
                yield f"data: {json.dumps(value, sort_keys=True)}\n\n"
                sent += 1
                if limit is not None and sent >= limit:
                    break
        finally:
            records.unsubscribe(subscription)
            logger.debug("Live stream on '%s' closed after %d frame(s)", path, sent)

    headers = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
    return Response(stream_with_context(generate()), mimetype="text/event-stream", headers=headers)


@live_bp.get("/<name>")
@require_admin
def live_view(name: str):
    """customers, staff or orders."""
    try:
        path, projector = view_service.live_projection(name)
    except KeyError:
        return jsonify({"error": f"Unknown live view '{name}'"}), 404
    return _stream(path, projector)


@live_bp.get("/customers/<customer_id>/<name>")
@require_admin
def live_customer_view(customer_id: str, name: str):
    """questions or workflows of one customer."""
    if name not in ("questions", "workflows"):
        return jsonify({"error": f"Unknown live view '{name}'"}), 404
    path, projector = view_service.live_projection(name, customer_id)
    return _stream(path, projector)


@live_bp.get("/path")
@require_admin
def live_path():
    """Raw value at ?path=Collection[/id[/field...]]."""
    parts = split_path(request.args.get("path"))
    if not parts or parts[0] not in COLLECTIONS:
        return jsonify({"error": f"path must start with one of: {', '.join(COLLECTIONS)}"}), 400
    return _stream("/".join(parts), lambda value: value)

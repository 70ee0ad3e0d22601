"""
Flatban live viewer
-------------------
Serves the board as HTML plus a small JSON API, and pushes change events to
open browsers over Server-Sent Events.

API:
    GET  /             -> board view (HTML); re-validates the index first
    GET  /api/board    -> JSON: { name, last_sync, columns: [...] }
    GET  /api/events   -> SSE stream, first frame {"type": "connected"}
    GET  /api/status   -> JSON: { last_sync, timestamp }
    POST /api/move     -> JSON body: { taskId, targetColumn }
    POST /api/delete   -> JSON body: { taskId }
    GET  /health

Run with `flatban serve`.
"""
import logging
import queue
from pathlib import Path
from typing import Optional

from flask import Flask, Response, jsonify, render_template_string, request

from .board import Board
from .config import load_config
from .errors import AmbiguousError, FlatbanError, NotFoundError, ValidationError
from .events import KEEPALIVE_FRAME, ChangeBroadcaster, ChangeEvent
from .paths import PathLike
from .schema import format_timestamp, utc_now
from .settings import Settings
from .watcher import BoardWatcher

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    AmbiguousError: 409,
}

BOARD_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{{ config.name }}</title>
<style>
  body { font-family: system-ui, sans-serif; margin: 1.5rem; background: #f6f7f9; }
  .board { display: flex; gap: 1rem; align-items: flex-start; }
  .column { background: #eceff3; border-radius: 6px; padding: .75rem; min-width: 14rem; }
  .column h2 { font-size: 1rem; margin: 0 0 .5rem; }
  .task { background: #fff; border-radius: 4px; padding: .5rem; margin-bottom: .5rem; cursor: grab; }
  .task .id { font-family: monospace; color: #777; font-size: .8rem; }
  .task .meta { font-size: .75rem; color: #555; }
  .task .btn-delete { float: right; border: none; background: none; color: #b33; cursor: pointer; font-size: .9rem; }
  footer { margin-top: 1rem; font-size: .75rem; color: #777; }
</style>
</head>
<body>
<h1>{{ config.name }}</h1>
<div class="board">
{% for column in config.columns %}
  <div class="column" data-column="{{ column.id }}">
    <h2>{{ column.name }} ({{ index.columns.get(column.id, 0) }})</h2>
    {% for task_id, task in grouped[column.id] %}
    <div class="task" draggable="true" data-id="{{ task_id }}">
      <button class="btn-delete" title="Delete task" data-id="{{ task_id }}" data-title="{{ task.title }}">&times;</button>
      <div class="id">{{ task_id }}</div>
      <div class="title">{{ task.title }}</div>
      <div class="meta">{{ task.priority }}{% if task.assigned %} &middot; {{ task.assigned }}{% endif %}{% for tag in task.tags %} #{{ tag }}{% endfor %}</div>
    </div>
    {% endfor %}
  </div>
{% endfor %}
</div>
<footer>Last sync: {{ index.last_sync }}</footer>
<script>
  let dragged = null;
  document.querySelectorAll('.task').forEach(el => {
    el.addEventListener('dragstart', () => { dragged = el; });
  });
  document.querySelectorAll('.column').forEach(col => {
    col.addEventListener('dragover', e => e.preventDefault());
    col.addEventListener('drop', e => {
      e.preventDefault();
      if (!dragged) return;
      fetch('/api/move', {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({taskId: dragged.dataset.id, targetColumn: col.dataset.column})
      }).then(r => r.json()).then(d => { if (!d.success) alert(d.error); });
    });
  });
  document.querySelectorAll('.btn-delete').forEach(btn => {
    btn.addEventListener('click', e => {
      e.stopPropagation();
      const {id, title} = btn.dataset;
      if (!confirm(`Are you sure you want to delete "${title}"?\\n\\nThis action cannot be undone.`)) return;
      fetch('/api/delete', {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({taskId: id})
      }).then(r => r.json()).then(d => { if (!d.success) alert('Failed to delete task: ' + d.error); });
    });
  });
  function connect() {
    const source = new EventSource('/api/events');
    source.onmessage = e => {
      const data = JSON.parse(e.data);
      if (data.type !== 'update') return;
      if (data.notify && data.notification && !document.hasFocus()
          && 'Notification' in window && Notification.permission === 'granted') {
        new Notification(data.notification.title, {body: data.notification.body, tag: 'flatban-update'});
      }
      window.location.reload();
    };
    source.onerror = () => { source.close(); setTimeout(connect, 3000); };
  }
  {% if config.notifications.enabled %}
  if ('Notification' in window && Notification.permission === 'default') Notification.requestPermission();
  {% endif %}
  connect();
</script>
</body>
</html>
"""


def _fail(e: Exception):
    status = 500
    for cls, code in ERROR_STATUS.items():
        if isinstance(e, cls):
            status = code
            break
    if status == 500:
        logger.error(f"Request failed: {e}")
    return jsonify({"success": False, "error": str(e)}), status


def create_app(
    board_root: PathLike,
    broadcaster: Optional[ChangeBroadcaster] = None,
    settings: Optional[Settings] = None,
) -> Flask:
    """Build the Flask app for one board. The broadcaster is shared with the watcher."""
    settings = settings or Settings(board_root=str(board_root))
    broadcaster = broadcaster or ChangeBroadcaster(settings.listener_queue_size)
    board = Board(board_root)

    app = Flask(__name__)
    app.config["BOARD"] = board
    app.config["BROADCASTER"] = broadcaster

    # ── Views ────────────────────────────────────────────────────────────

    @app.route("/")
    @app.route("/index.html")
    def index():
        try:
            config, idx = board.snapshot()
        except FlatbanError as e:
            return f"Error: {e}", 500
        return render_template_string(
            BOARD_TEMPLATE, config=config, index=idx, grouped=idx.by_column(config, newest_first=True)
        )

    @app.route("/api/board")
    def api_board():
        try:
            config, idx = board.snapshot()
        except FlatbanError as e:
            return _fail(e)
        grouped = idx.by_column(config, newest_first=True)
        return jsonify({
            "name": config.name,
            "last_sync": idx.last_sync,
            "notifications": config.notifications.to_dict(),
            "columns": [
                {
                    "id": c.id,
                    "name": c.name,
                    "count": idx.columns.get(c.id, 0),
                    "tasks": [dict(e.to_dict(), id=tid) for tid, e in grouped[c.id]],
                }
                for c in config.columns
            ],
        })

    @app.route("/api/status")
    def api_status():
        idx = board.store.load()
        return jsonify({"last_sync": idx.last_sync, "timestamp": format_timestamp(utc_now())})

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "board": str(Path(board_root).resolve()),
            "listeners": broadcaster.listener_count,
        })

    # ── Event stream ─────────────────────────────────────────────────────

    @app.route("/api/events")
    def api_events():
        listener = broadcaster.subscribe()

        def stream():
            try:
                yield ChangeEvent.connected().to_sse()
                while True:
                    try:
                        event = listener.get(timeout=settings.sse_keepalive_secs)
                    except queue.Empty:
                        yield KEEPALIVE_FRAME
                        continue
                    yield event.to_sse()
            finally:
                broadcaster.unsubscribe(listener)

        return Response(stream(), mimetype="text/event-stream", headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        })

    # ── Mutations ────────────────────────────────────────────────────────

    @app.route("/api/move", methods=["POST"])
    def api_move():
        data = request.get_json(force=True, silent=True) or {}
        task_id = str(data.get("taskId") or "").strip()
        target = str(data.get("targetColumn") or "").strip()
        if not task_id or not target:
            return jsonify({"success": False, "error": "taskId and targetColumn are required"}), 400

        try:
            result = board.move(task_id, target)
        except FlatbanError as e:
            return _fail(e)

        if result.moved:
            config = _event_config(board)
            if config is not None:
                broadcaster.broadcast(ChangeEvent.for_action(
                    config, "move",
                    task_id=result.task_id,
                    task_title=result.title,
                    from_column=result.from_column,
                    to_column=result.to_column,
                    to_column_name=result.to_column_name,
                    last_sync=result.last_sync,
                ))
        return jsonify({"success": True, "taskId": result.task_id, "moved": result.moved})

    @app.route("/api/delete", methods=["POST"])
    def api_delete():
        data = request.get_json(force=True, silent=True) or {}
        task_id = str(data.get("taskId") or "").strip()
        if not task_id:
            return jsonify({"success": False, "error": "taskId is required"}), 400

        try:
            result = board.delete(task_id)
        except FlatbanError as e:
            return _fail(e)

        config = _event_config(board)
        if config is not None:
            broadcaster.broadcast(ChangeEvent.for_action(
                config, "delete",
                task_id=result.task_id,
                task_title=result.title,
                from_column=result.column,
                last_sync=result.last_sync,
            ))
        return jsonify({"success": True, "taskId": result.task_id})

    return app


def _event_config(board: Board):
    """Config for building an event after a mutation; the mutation already succeeded."""
    try:
        return load_config(board.root)
    except FlatbanError as e:
        logger.warning(f"Not broadcasting change: {e}")
        return None


# ── Entry point ──────────────────────────────────────────────────────────────


def serve(settings: Settings) -> None:
    """Run the viewer and the watcher until interrupted."""
    broadcaster = ChangeBroadcaster(settings.listener_queue_size)
    watcher = BoardWatcher(settings.board_root, broadcaster, settings.debounce_ms)
    app = create_app(settings.board_root, broadcaster, settings)

    watcher.start()
    print(f"\n✓ Web viewer running at http://{settings.host}:{settings.port}")
    print("Press Ctrl+C to stop\n")
    try:
        app.run(host=settings.host, port=settings.port, debug=False, threaded=True)
    finally:
        watcher.stop()

"""
Change notification fan-out.

Anything that changes the board (an API mutation, or the watcher seeing
files change underneath us) builds a ChangeEvent and hands it to a
ChangeBroadcaster, which copies it to every connected listener.

Delivery is at-most-once and best effort: no queueing for listeners that
connect later, no replay, and a listener that can't take the event (full
queue) simply misses it.
"""
import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .schema import BoardConfig, format_timestamp, utc_now

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keepalive\n\n"


@dataclass
class ChangeEvent:
    """One "something changed" message, as sent on the SSE stream."""
    type: str = "update"            # "connected" | "update"
    source: str = "api"             # "api" | "filesystem"
    action: Optional[str] = None    # "create" | "move" | "delete"
    task_id: Optional[str] = None
    task_title: Optional[str] = None
    from_column: Optional[str] = None
    to_column: Optional[str] = None
    to_column_name: Optional[str] = None
    last_sync: Optional[str] = None
    notify: bool = False
    timestamp: str = field(default_factory=lambda: format_timestamp(utc_now()))

    @classmethod
    def connected(cls) -> "ChangeEvent":
        return cls(type="connected", source="server")

    @classmethod
    def filesystem(cls, config: Optional[BoardConfig] = None) -> "ChangeEvent":
        event = cls(type="update", source="filesystem")
        if config is not None:
            event.notify = config.notifications.should_notify(None, None)
        return event

    @classmethod
    def for_action(cls, config: BoardConfig, action: str, **fields) -> "ChangeEvent":
        event = cls(type="update", source="api", action=action, **fields)
        event.notify = config.notifications.should_notify(action, event.to_column)
        return event

    def message(self) -> tuple:
        """(title, body) for a desktop notification about this event."""
        if self.action == "move":
            return "Task Moved", f'"{self.task_title}" moved to {self.to_column_name}'
        if self.action == "delete":
            return "Task Deleted", f'"{self.task_title}" was deleted'
        if self.action == "create":
            return "Task Created", f'"{self.task_title}" was created'
        return "Flatban Update", "A task was updated"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "source": self.source,
            "action": self.action,
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "fromColumn": self.from_column,
            "toColumn": self.to_column,
            "toColumnName": self.to_column_name,
            "last_sync": self.last_sync,
            "timestamp": self.timestamp,
        }
        data = {k: v for k, v in data.items() if v is not None}
        if self.type == "update":
            data["notify"] = self.notify
            if self.notify:
                title, body = self.message()
                data["notification"] = {"title": title, "body": body}
        return data

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


class ChangeBroadcaster:
    """Owns the set of live listeners for one board.

    Listeners are bounded queues handed out by subscribe(). The server's
    request threads and the watcher thread both touch the set, hence the lock.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._listeners: List[queue.Queue] = []
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        listener: queue.Queue = queue.Queue(maxsize=self.queue_size)
        with self._lock:
            self._listeners.append(listener)
        logger.debug(f"Listener subscribed ({self.listener_count} connected)")
        return listener

    def unsubscribe(self, listener: queue.Queue) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
        logger.debug(f"Listener unsubscribed ({self.listener_count} connected)")

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def broadcast(self, event: ChangeEvent) -> int:
        """Send an event to every listener. Returns how many accepted it."""
        with self._lock:
            listeners = list(self._listeners)

        delivered = 0
        for listener in listeners:
            try:
                listener.put_nowait(event)
                delivered += 1
            except queue.Full:
                # Stalled or gone; its own disconnect will unsubscribe it
                logger.debug("Dropping event for a listener that is not reading")
        logger.debug(f"Broadcast {event.action or event.type} to {delivered}/{len(listeners)} listeners")
        return delivered

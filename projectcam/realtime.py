"""
projectcam/realtime.py

Project-scoped publish/subscribe for live updates.

Each WebSocket connection subscribes to exactly one project's group and
gets a bounded queue bound to its own event loop. Route handlers (which
run in the threadpool) publish into every queue of the event's project via
``call_soon_threadsafe``.

Delivery is at-most-once: a full queue or a closed loop drops the event,
there is no replay or backlog, and clients reconcile by re-reading.

Subscriptions end when standing on the project ends: the routes drop a
removed collaborator, every subscriber of a deleted project and all of a
deactivated user's subscribers. Their streams receive an end marker and
the socket is closed.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from projectcam.config import EVENT_QUEUE_SIZE, IS_DEV
from projectcam.store import new_id, now_iso


class EventType:
    """Event type tags sent to subscribers."""
    SUBSCRIBED = "subscribed"
    PHOTO_ADDED = "photo-added"
    PHOTO_UPDATED = "photo-updated"
    PHOTO_DELETED = "photo-deleted"
    COMMENT_ADDED = "comment-added"
    REPLY_ADDED = "reply-added"
    ANNOTATION_ADDED = "annotation-added"
    LIKE_TOGGLED = "like-toggled"
    COLLABORATOR_ADDED = "collaborator-added"
    COLLABORATOR_REMOVED = "collaborator-removed"
    CHECKLIST_ADDED = "checklist-added"
    CHECKLIST_ITEM_UPDATED = "checklist-item-updated"
    PROJECT_UPDATED = "project-updated"


def make_event(event_type: str, project_id: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": event_type, "project_id": project_id, "data": data or {}, "timestamp": now_iso()}


@dataclass(eq=False)
class Subscriber:
    project_id: str
    user_id: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue
    id: str = field(default_factory=new_id)
    dropped: int = 0
    revoked: bool = False

    def offer(self, event: Dict[str, Any]) -> None:
        # Runs on the subscriber's loop
        if self.revoked:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            if IS_DEV:
                print(f"[REALTIME] Queue full, dropped {event['type']} for subscriber {self.id}")

    def revoke(self) -> None:
        """
        Runs on the subscriber's loop. Queues the end-of-stream marker (None)
        behind any pending events; later events are ignored.
        """
        self.revoked = True
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()
                self.dropped += 1


class ProjectHub:
    """Subscriber groups keyed by project id."""

    def __init__(self, queue_size: int = EVENT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._groups: Dict[str, Set[Subscriber]] = {}

    def subscribe(self, project_id: str, user_id: str) -> Subscriber:
        """Register a subscriber; must be called from the loop that will consume it."""
        sub = Subscriber(
            project_id=str(project_id),
            user_id=str(user_id),
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        with self._lock:
            self._groups.setdefault(sub.project_id, set()).add(sub)
        if IS_DEV:
            print(f"[REALTIME] user_id={user_id} joined project {project_id}")
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        with self._lock:
            group = self._groups.get(sub.project_id)
            if group is not None:
                group.discard(sub)
                if not group:
                    del self._groups[sub.project_id]
        if IS_DEV:
            print(f"[REALTIME] user_id={sub.user_id} left project {sub.project_id}")

    def _drop(self, matches: Callable[[Subscriber], bool], reason: str) -> int:
        with self._lock:
            targets = [sub for group in self._groups.values() for sub in group if matches(sub)]
            for sub in targets:
                group = self._groups.get(sub.project_id)
                group.discard(sub)
                if not group:
                    del self._groups[sub.project_id]

        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub.revoke)
            except RuntimeError:
                # Loop already closed; the connection is gone
                pass
        if targets:
            print(f"[REALTIME] Revoked {len(targets)} subscription(s): {reason}")
        return len(targets)

    def drop_user(self, project_id: str, user_id: str) -> int:
        """End a user's subscriptions to one project (membership revoked)."""
        return self._drop(
            lambda sub: sub.project_id == str(project_id) and sub.user_id == str(user_id),
            f"user_id={user_id} left project {project_id}",
        )

    def drop_project(self, project_id: str) -> int:
        """End every subscription to a project (project deleted)."""
        return self._drop(lambda sub: sub.project_id == str(project_id), f"project {project_id} deleted")

    def drop_user_everywhere(self, user_id: str) -> int:
        """End all of a user's subscriptions (account deactivated)."""
        return self._drop(lambda sub: sub.user_id == str(user_id), f"user_id={user_id} deactivated")

    def subscriber_count(self, project_id: str) -> int:
        with self._lock:
            return len(self._groups.get(str(project_id), ()))

    def publish(self, project_id: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> int:
        """
        Fire-and-forget fan-out to the project's group. Safe from any thread.

        Returns:
            Number of subscribers the event was handed to
        """
        event = make_event(event_type, str(project_id), data)
        with self._lock:
            targets = list(self._groups.get(str(project_id), ()))

        delivered = 0
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub.offer, event)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the connection is gone
                self.unsubscribe(sub)
        if IS_DEV and targets:
            print(f"[REALTIME] {event_type} -> project {project_id} ({delivered} subscribers)")
        return delivered


hub = ProjectHub()

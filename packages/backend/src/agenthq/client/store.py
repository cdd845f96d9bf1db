"""Client-side cache of live updates.

Learn: RealtimeStore is a plain consumer of RealtimeClient. It keeps the
last few posts/activities/insights newest-first and the latest status of
every agent, so a UI can render live changes before its next re-fetch.
Caps match the dashboard: 100 posts, 50 activities, 20 insights.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from agenthq.client.realtime import ConnectionState, RealtimeClient
from agenthq.realtime import events
from agenthq.realtime.events import ActivityEntry, AgentStatusUpdate, Insight, Post

MAX_RECENT_POSTS = 100
MAX_RECENT_ACTIVITIES = 50
MAX_RECENT_INSIGHTS = 20


@dataclass
class RecentPost:
    post: Post
    received_at: datetime


@dataclass
class AgentStatusEntry:
    status: str
    timestamp: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RealtimeStore:
    def __init__(self) -> None:
        self.connection_state = ConnectionState.DISCONNECTED
        self.last_connected: Optional[datetime] = None
        self.last_disconnected: Optional[datetime] = None
        self._posts: deque[RecentPost] = deque(maxlen=MAX_RECENT_POSTS)
        self._activities: deque[ActivityEntry] = deque(maxlen=MAX_RECENT_ACTIVITIES)
        self._insights: deque[Insight] = deque(maxlen=MAX_RECENT_INSIGHTS)
        self._agent_status: dict[str, AgentStatusEntry] = {}

    # ─── Wiring ───────────────────────────────────────────

    def bind(self, client: RealtimeClient) -> Callable[[], None]:
        """Listen to a client's domain events. Returns an unbind function.

        Connection state isn't a listener event — pass
        store.set_connection_state as the client's on_connection_change.
        """
        offs = [
            client.on(events.POST_NEW, self.handle_new_post),
            client.on(events.AGENT_STATUS, self.handle_agent_status),
            client.on(events.ACTIVITY_NEW, self.handle_new_activity),
            client.on(events.INSIGHT_NEW, self.handle_new_insight),
        ]

        def unbind() -> None:
            for off in offs:
                off()

        return unbind

    # ─── Connection state ─────────────────────────────────

    def set_connection_state(self, state: ConnectionState) -> None:
        self.connection_state = state
        if state is ConnectionState.CONNECTED:
            self.last_connected = _now()
            self.last_disconnected = None
        elif state is ConnectionState.DISCONNECTED:
            self.last_disconnected = _now()

    @property
    def is_connected(self) -> bool:
        return self.connection_state is ConnectionState.CONNECTED

    # ─── Event handlers ───────────────────────────────────

    def handle_new_post(self, post: Post) -> None:
        self._posts.appendleft(RecentPost(post=post, received_at=_now()))

    def handle_agent_status(self, update: AgentStatusUpdate) -> None:
        self._agent_status[update.agent_id] = AgentStatusEntry(
            status=update.status, timestamp=_now()
        )

    def handle_new_activity(self, activity: ActivityEntry) -> None:
        self._activities.appendleft(activity)

    def handle_new_insight(self, insight: Insight) -> None:
        self._insights.appendleft(insight)

    # ─── Reads ────────────────────────────────────────────

    @property
    def recent_posts(self) -> list[Post]:
        return [entry.post for entry in self._posts]

    @property
    def recent_post_entries(self) -> list[RecentPost]:
        return list(self._posts)

    @property
    def recent_activities(self) -> list[ActivityEntry]:
        return list(self._activities)

    @property
    def recent_insights(self) -> list[Insight]:
        return list(self._insights)

    def get_agent_status(self, agent_id: str) -> Optional[AgentStatusEntry]:
        return self._agent_status.get(agent_id)

    def clear_cache(self) -> None:
        self._posts.clear()
        self._activities.clear()
        self._insights.clear()
        self._agent_status.clear()

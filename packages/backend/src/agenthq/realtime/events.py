"""Realtime event names and typed payloads.

Learn: Centralizing event names as constants prevents typos and makes
it easy to discover every event the realtime layer carries. Domain
events are produced by the REST layer; control events belong to the
subscription protocol itself.

Payload models are deliberately lenient (extra fields allowed, most
fields optional) — the REST layer owns the full schema, the realtime
layer only needs enough to hand listeners a typed object.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from agenthq.realtime.protocol import WsMessage

# ─── Control events (client ⇄ server) ───────────────────

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
HEARTBEAT = "heartbeat"
SUBSCRIBED = "subscribed"
UNSUBSCRIBED = "unsubscribed"
HEARTBEAT_ACK = "heartbeat_ack"

# ─── Domain events (server → client) ────────────────────

POST_NEW = "post:new"
POST_UPDATED = "post:updated"
POST_DELETED = "post:deleted"
AGENT_STATUS = "agent:status"
ACTIVITY_NEW = "activity:new"
INSIGHT_NEW = "insight:new"
REACTION_NEW = "reaction:new"
REACTION_REMOVED = "reaction:removed"
NOTIFICATION_NEW = "notification:new"
TASK_NEW = "task:new"
TASK_UPDATED = "task:updated"

DOMAIN_EVENTS = frozenset({
    POST_NEW,
    POST_UPDATED,
    POST_DELETED,
    AGENT_STATUS,
    ACTIVITY_NEW,
    INSIGHT_NEW,
    REACTION_NEW,
    REACTION_REMOVED,
    NOTIFICATION_NEW,
    TASK_NEW,
    TASK_UPDATED,
})


# ─── Payload models ─────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Post(_Payload):
    id: str
    org_id: Optional[str] = None
    channel_id: Optional[str] = None
    author_id: Optional[str] = None
    author_type: Optional[str] = None
    type: Optional[str] = None
    title: Optional[str] = None
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_id: Optional[str] = None
    pinned: bool = False
    created_at: Optional[str] = None


class AgentStatusUpdate(_Payload):
    agent_id: str = Field(alias="agentId")
    status: str


class ActivityEntry(_Payload):
    id: str
    org_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_type: Optional[str] = None
    action: str = ""
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class Insight(_Payload):
    id: str
    org_id: Optional[str] = None
    type: Optional[str] = None
    title: str = ""
    content: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    source_posts: list[str] = Field(default_factory=list)
    source_agents: list[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    reviewed: bool = False
    created_at: Optional[str] = None


# ─── Tagged union ───────────────────────────────────────


class PostNewEvent(BaseModel):
    event: Literal["post:new"]
    data: Post


class AgentStatusEvent(BaseModel):
    event: Literal["agent:status"]
    data: AgentStatusUpdate


class ActivityNewEvent(BaseModel):
    event: Literal["activity:new"]
    data: ActivityEntry


class InsightNewEvent(BaseModel):
    event: Literal["insight:new"]
    data: Insight


ServerEvent = Annotated[
    Union[PostNewEvent, AgentStatusEvent, ActivityNewEvent, InsightNewEvent],
    Field(discriminator="event"),
]

TYPED_EVENTS = frozenset({POST_NEW, AGENT_STATUS, ACTIVITY_NEW, INSIGHT_NEW})

_server_event = TypeAdapter(ServerEvent)


def parse_server_event(message: WsMessage) -> Union[ServerEvent, WsMessage]:
    """Narrow a decoded frame to its typed event model.

    Events without a payload model come back as the generic WsMessage.
    A typed event whose payload doesn't validate raises ValueError.
    """
    if message.event not in TYPED_EVENTS:
        return message
    try:
        return _server_event.validate_python(
            {"event": message.event, "data": message.data}
        )
    except ValidationError as e:
        raise ValueError(f"Invalid {message.event} payload: {e}") from e

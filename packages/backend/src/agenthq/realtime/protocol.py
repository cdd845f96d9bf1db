"""Wire format shared by the server hub and the client.

Every frame is a JSON object: {"event": "<name>", "data": <payload>}.
Decoding never raises — anything that isn't a well-formed frame comes
back as None and the caller drops it.
"""

import json
from typing import Any, Optional, Union

from pydantic import BaseModel


class WsMessage(BaseModel):
    event: str
    data: Any = None


def jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return data


def encode_message(event: str, data: Any = None) -> str:
    """Serialize one frame."""
    return json.dumps({"event": event, "data": jsonable(data)}, default=str)


def decode_message(raw: Union[str, bytes]) -> Optional[WsMessage]:
    """Parse one frame, or None if it's malformed."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, RecursionError):
        return None
    if not isinstance(payload, dict):
        return None
    event = payload.get("event")
    if not isinstance(event, str):
        return None
    return WsMessage(event=event, data=payload.get("data"))

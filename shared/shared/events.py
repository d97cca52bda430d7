import json
import uuid
from datetime import datetime, timezone


def build_event(event_type: str, data: dict, source: str | None = None) -> dict:
    event = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }
    if source:
        event["source"] = source
    return event


def to_json(event: dict) -> str:
    # default=str covers datetimes nested in event data
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)

"""Message record built for each publish."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class Message:
    """A (topic, payload) pair on its way to subscribers. The payload is never copied."""

    topic: str
    payload: Any = None
    message_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.message_id is None:
            self.message_id = f"msg_{uuid.uuid4().hex[:12]}"

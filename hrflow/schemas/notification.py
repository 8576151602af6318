from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Dict, Optional


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    title: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    link: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None

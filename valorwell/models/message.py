from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from valorwell.models.base import BackendRow


class SenderType(str, Enum):
    CLIENT = "client"
    STAFF = "staff"


class Message(BackendRow):
    id: str
    tenant_id: str
    client_id: str
    staff_id: str
    sender_type: SenderType
    sender_id: str
    body: str
    read_at: Optional[datetime] = None
    created_at: datetime


class MessageCreate(BaseModel):
    client_id: str
    staff_id: Optional[str] = None  # defaults to the sender's staff row or the client's clinician
    body: str = Field(min_length=1, max_length=10000)


class ConversationSummary(BaseModel):
    client_id: str
    staff_id: str
    client_name: str
    last_message_body: str
    last_message_at: datetime
    last_sender_type: SenderType
    unread_count: int = 0

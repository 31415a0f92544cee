from datetime import datetime
from typing import Any, List, Literal, Optional, TypedDict

from educhat.models.participant import ParticipantDocument


MessageType = Literal["text", "image", "file"]


class AttachmentDocument(TypedDict, total=False):
    url: str
    type: str
    filename: Optional[str]
    size: Optional[int]


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: Any
    sender: ParticipantDocument
    receiver: ParticipantDocument
    content: str
    message_type: MessageType
    attachments: List[AttachmentDocument]
    created_at: datetime
    # set once, by the receiver
    read_at: Optional[datetime]


class MessagePage(TypedDict):
    messages: List[MessageDocument]
    total_count: int
    page: int
    page_size: int
    total_pages: int

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, TypedDict

from educhat.models.participant import ParticipantDocument


ConversationType = Literal["student_educator"]

STUDENT_EDUCATOR: ConversationType = "student_educator"


class LastMessagePreview(TypedDict, total=False):
    _id: str
    content: str
    message_type: str
    attachments: List[Dict[str, Any]]
    created_at: datetime


class ConversationDocument(TypedDict, total=False):
    _id: str
    type: ConversationType
    participants: List[ParticipantDocument]
    # sorted "id:id" of the pair, unique per type
    participant_key: str
    is_active: bool
    last_message: Optional[Any]
    last_message_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    # computed per caller, never stored
    unread_count: int


def participant_key(user_a: str, user_b: str) -> str:
    return ":".join(sorted([str(user_a), str(user_b)]))

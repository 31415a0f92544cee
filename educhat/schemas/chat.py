from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class Attachment(BaseModel):

    url: str = Field(min_length=1)
    type: str = "image"
    filename: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)


class CreateConversationRequest(BaseModel):

    other_user_id: str = Field(min_length=1)


class SendMessageRequest(BaseModel):

    conversation_id: str = Field(min_length=1)
    receiver_id: str = Field(min_length=1)
    receiver_role: Optional[str] = None
    content: str = Field(default="", max_length=5000)
    message_type: Literal["text", "image", "file"] = "text"
    attachments: List[Attachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _content_or_attachment(self):
        if not self.content.strip() and not self.attachments:
            raise ValueError("content is required when no attachments are sent")
        return self

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    # clients send camelCase, python code uses snake_case
    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    # validated against image/video by the message store so the sender gets an error event
    media_type: Optional[str] = Field(default=None, alias="mediaType")

    def media(self) -> Optional[Dict[str, Optional[str]]]:
        if self.media_url is None and self.media_type is None:
            return None
        return {"url": self.media_url, "kind": self.media_type}


class SendMessageRequest(_Payload):

    # optional here so a missing target is reported through the delivery router
    recipient_id: Optional[str] = Field(default=None, alias="recipientId")


class SendGroupMessageRequest(_Payload):

    recipient_ids: List[str] = Field(default_factory=list, alias="recipientIds")


class MarkReadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: Optional[str] = Field(default=None, alias="messageId")


class Media(BaseModel):

    url: str
    kind: str


class ReadReceipt(BaseModel):

    user_id: str
    read_at: datetime


class MessageOut(BaseModel):

    id: str
    sender_id: str
    recipients: List[str]
    content: Optional[str] = None
    media: Optional[Media] = None
    is_group_message: bool
    created_at: datetime
    read_by: List[ReadReceipt]


class ParticipantOut(BaseModel):

    id: str
    username: Optional[str] = None
    profile_picture: Optional[str] = None


class LastMessageOut(BaseModel):

    content: Optional[str] = None
    created_at: datetime
    sender_id: str
    is_group_message: bool = False


class ConversationOut(BaseModel):

    id: str
    participants: List[ParticipantOut]
    last_message: LastMessageOut
    unread_count: int


class MessageList(BaseModel):

    messages: List[MessageOut]


class ConversationList(BaseModel):

    items: List[ConversationOut]

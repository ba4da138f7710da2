from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional


# Members and conversations
class MemberData(BaseModel):
    id: int
    name: str
    photo_url: str = ""
    is_admin: bool = False


class ReactionData(BaseModel):
    user_id: int
    reaction: str


class MessageData(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    sender_name: str
    content: str
    is_photo: bool
    is_forwarded: bool
    reply_to_id: Optional[int] = None
    timestamp: datetime
    reactions: List[ReactionData] = []


class ConversationData(BaseModel):
    id: int
    name: str
    kind: str
    is_group: bool
    photo_url: str = ""
    last_message_id: Optional[int] = None
    last_message: Optional[MessageData] = None
    members: List[MemberData] = []


class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationData]


class ConversationDetailsModel(BaseModel):
    conversation: ConversationData
    messages: List[MessageData]


# Direct conversations
class CreateDirectConversationModel(BaseModel):
    target_user_id: int


class CreateDirectConversationResponseModel(BaseModel):
    conversation_id: int
    is_new: bool


# Send messages
class SendMessageResponseModel(BaseModel):
    message_id: int


# Forward
class ForwardMessageModel(BaseModel):
    conversation_ids: List[int]

    @field_validator("conversation_ids")
    @classmethod
    def validate_targets(cls, conversation_ids: List[int]) -> List[int]:
        if not conversation_ids:
            raise ValueError("conversation_ids cannot be empty.")
        return conversation_ids


class ForwardResultData(BaseModel):
    conversation_id: int
    outcome: str
    message_id: Optional[int] = None


class ForwardMessageResponseModel(BaseModel):
    forwarded_message_ids: List[int]
    results: List[ForwardResultData]


# Reactions
class ReactionModel(BaseModel):
    emoji: str

    @field_validator("emoji")
    @classmethod
    def validate_emoji(cls, emoji: str) -> str:
        emoji = emoji.strip()
        if not emoji:
            raise ValueError("The 'emoji' field is required.")
        if len(emoji) > 32:
            raise ValueError("Reaction must be at most 32 characters long.")
        return emoji

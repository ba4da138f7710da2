"""
Failure kinds raised by the chat core.

The HTTP layer maps these to status codes in one place (see app/main.py);
nothing in here knows about HTTP.
"""

from typing import Iterable, Optional


class ChatError(Exception):
    """Base class for every expected failure of a core operation."""

    default_message = "Chat operation failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundError(ChatError):
    default_message = "The requested entity was not found."


class ConversationNotFoundError(NotFoundError):
    default_message = "Conversation not found."


class MessageNotFoundError(NotFoundError):
    default_message = "Message not found."


class ReactionNotFoundError(NotFoundError):
    default_message = "Reaction not found."


class ReplyTargetNotFoundError(NotFoundError):
    default_message = "The message being replied to does not exist in this conversation."


class MemberNotFoundError(NotFoundError):
    """One or more referenced user ids do not exist."""

    def __init__(self, user_ids: Iterable[int]):
        self.user_ids = sorted(set(user_ids))
        super().__init__(f"Unknown user id(s): {', '.join(map(str, self.user_ids))}")


class NotMemberError(ChatError):
    default_message = "You are not a member of this conversation."


class NotAdminError(ChatError):
    default_message = "You are not an administrator of this group."


class ConflictError(ChatError):
    default_message = "The resource already exists."


class InvalidArgumentError(ChatError):
    default_message = "Invalid argument."


class DeadlineExceededError(ChatError):
    default_message = "The operation did not finish before its deadline."

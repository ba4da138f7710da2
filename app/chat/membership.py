from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import NotAdminError, NotMemberError
from .models import ConversationMember


class MembershipEngine:
    """
    Membership and admin checks for a (conversation, user) pair.

    Read-only. Every method runs inside the caller's session so that a check
    and the write it guards belong to the same transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def _admin_flag(self, conversation_id: int, user_id: int) -> Optional[bool]:
        return self.session.scalar(
            select(ConversationMember.is_admin).where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.user_id == user_id,
            )
        )

    def is_member(self, conversation_id: int, user_id: int) -> bool:
        return self._admin_flag(conversation_id, user_id) is not None

    def is_admin(self, conversation_id: int, user_id: int) -> bool:
        return bool(self._admin_flag(conversation_id, user_id))

    def require_member(self, conversation_id: int, user_id: int):
        if not self.is_member(conversation_id, user_id):
            raise NotMemberError()

    def require_admin(self, conversation_id: int, user_id: int):
        is_admin = self._admin_flag(conversation_id, user_id)
        if is_admin is None:
            raise NotMemberError()
        if not is_admin:
            raise NotAdminError()

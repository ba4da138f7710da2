import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import Database
from app.core.errors import (
    ChatError,
    ConflictError,
    ConversationNotFoundError,
    InvalidArgumentError,
    MemberNotFoundError,
    NotAdminError,
    NotFoundError,
    NotMemberError,
)
from app.users.models import User
from .membership import MembershipEngine
from .models import DIRECT, GROUP, Conversation, ConversationMember


logger = logging.getLogger(__name__)

ADDED = "added"
ALREADY_MEMBER = "already_member"
MEMBER_NOT_FOUND = "member_not_found"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
FAILED = "failed"


@dataclass
class MemberAddResult:
    user_id: int
    error: Optional[ChatError] = None
    already_member: bool = False

    @property
    def outcome(self) -> str:
        if self.error is None:
            return ALREADY_MEMBER if self.already_member else ADDED
        if isinstance(self.error, MemberNotFoundError):
            return MEMBER_NOT_FOUND
        if isinstance(self.error, (NotMemberError, NotAdminError)):
            return FORBIDDEN
        if isinstance(self.error, NotFoundError):
            return NOT_FOUND
        return FAILED

    @property
    def ok(self) -> bool:
        return self.error is None


def canonical_pair(user_a: int, user_b: int) -> Tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def missing_user_ids(session: Session, user_ids: Iterable[int]) -> List[int]:
    wanted = set(user_ids)
    if not wanted:
        return []
    found = set(session.scalars(select(User.id).where(User.id.in_(wanted))).all())
    return sorted(wanted - found)


def load_group(session: Session, conversation_id: int) -> Conversation:
    conversation = session.get(Conversation, conversation_id)
    if conversation is None or conversation.kind != GROUP:
        raise ConversationNotFoundError()
    return conversation


class ConversationManager:
    """Creates direct chats and groups and manages group membership."""

    def __init__(self, db: Database, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout

    # ==================== DIRECT CONVERSATIONS ====================

    def _find_direct(self, session: Session, low: int, high: int) -> Optional[int]:
        return session.scalar(
            select(Conversation.id).where(
                Conversation.kind == DIRECT,
                Conversation.direct_user_low == low,
                Conversation.direct_user_high == high,
            )
        )

    def create_or_get_direct(self, user_a: int, user_b: int) -> Tuple[int, bool]:
        """
        Return ``(conversation_id, created)`` for the direct chat of two users.

        The pair is looked up in canonical order first, so calling with the
        arguments swapped returns the same conversation. The uniqueness
        constraint on the canonical pair settles concurrent creators: the
        loser rolls back and returns the winner's conversation.
        """
        if user_a == user_b:
            raise InvalidArgumentError("Cannot start a conversation with yourself.")

        low, high = canonical_pair(user_a, user_b)

        with self.db.transaction(self.timeout) as session:
            existing = self._find_direct(session, low, high)
            if existing is not None:
                return existing, False

            missing = missing_user_ids(session, (low, high))
            if missing:
                raise MemberNotFoundError(missing)

        try:
            with self.db.transaction(self.timeout) as session:
                conversation = Conversation(
                    name="",
                    kind=DIRECT,
                    photo_url="",
                    direct_user_low=low,
                    direct_user_high=high,
                )
                session.add(conversation)
                session.flush()

                session.add_all(
                    [
                        ConversationMember(
                            conversation_id=conversation.id, user_id=low, is_admin=False
                        ),
                        ConversationMember(
                            conversation_id=conversation.id, user_id=high, is_admin=False
                        ),
                    ]
                )
                session.flush()
                conversation_id = conversation.id
        except IntegrityError:
            with self.db.transaction(self.timeout) as session:
                existing = self._find_direct(session, low, high)
            if existing is None:
                raise
            logger.info(f"direct_conversation_race_resolved pair={low}:{high} id={existing}")
            return existing, False

        logger.info(f"direct_conversation_created pair={low}:{high} id={conversation_id}")
        return conversation_id, True

    # ==================== GROUPS ====================

    def create_group(self, creator_id: int, name: str, member_ids: Iterable[int]) -> int:
        """
        Create a group owned by ``creator_id``.

        The creator is always a member and the only admin; the member list is
        deduplicated. Either the group and every membership are stored or
        nothing is.
        """
        name = (name or "").strip()
        member_ids = list(member_ids or [])
        if not name:
            raise InvalidArgumentError("Group name cannot be empty.")
        if not member_ids:
            raise InvalidArgumentError("A group needs at least one member.")

        members = [creator_id] + [uid for uid in dict.fromkeys(member_ids) if uid != creator_id]

        with self.db.transaction(self.timeout) as session:
            missing = missing_user_ids(session, members)
            if missing:
                raise MemberNotFoundError(missing)

            conversation = Conversation(name=name, kind=GROUP, photo_url="")
            session.add(conversation)
            session.flush()

            session.add_all(
                [
                    ConversationMember(
                        conversation_id=conversation.id,
                        user_id=uid,
                        is_admin=(uid == creator_id),
                    )
                    for uid in members
                ]
            )
            session.flush()
            group_id = conversation.id

        logger.info(f"group_created id={group_id} admin={creator_id} members={len(members)}")
        return group_id

    def rename_group(self, conversation_id: int, acting_user_id: int, new_name: str):
        new_name = (new_name or "").strip()
        if not new_name:
            raise InvalidArgumentError("Group name cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            group = load_group(session, conversation_id)
            MembershipEngine(session).require_admin(conversation_id, acting_user_id)
            group.name = new_name

        logger.info(f"group_renamed id={conversation_id} by={acting_user_id}")

    def set_group_photo(self, conversation_id: int, acting_user_id: int, photo_url: str):
        if not photo_url:
            raise InvalidArgumentError("Photo reference cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            group = load_group(session, conversation_id)
            MembershipEngine(session).require_admin(conversation_id, acting_user_id)
            group.photo_url = photo_url

        logger.info(f"group_photo_updated id={conversation_id} by={acting_user_id}")

    def _add_one(self, conversation_id: int, acting_user_id: int, user_id: int) -> MemberAddResult:
        # Group and admin rights are re-checked in the insert's transaction
        try:
            with self.db.transaction(self.timeout) as session:
                load_group(session, conversation_id)
                membership = MembershipEngine(session)
                membership.require_admin(conversation_id, acting_user_id)

                if session.get(User, user_id) is None:
                    raise MemberNotFoundError([user_id])
                if membership.is_member(conversation_id, user_id):
                    return MemberAddResult(user_id, already_member=True)

                session.add(
                    ConversationMember(
                        conversation_id=conversation_id, user_id=user_id, is_admin=False
                    )
                )
                session.flush()
        except IntegrityError:
            return self._resolve_add_conflict(conversation_id, user_id)
        except ChatError as error:
            return MemberAddResult(user_id, error=error)

        return MemberAddResult(user_id)

    def _resolve_add_conflict(self, conversation_id: int, user_id: int) -> MemberAddResult:
        """Explain a failed membership insert by reading the current state."""
        try:
            with self.db.transaction(self.timeout) as session:
                load_group(session, conversation_id)
                if MembershipEngine(session).is_member(conversation_id, user_id):
                    # Added concurrently by someone else
                    return MemberAddResult(user_id, already_member=True)
                if session.get(User, user_id) is None:
                    raise MemberNotFoundError([user_id])
        except ChatError as error:
            return MemberAddResult(user_id, error=error)

        logger.warning(f"group_member_add_conflict id={conversation_id} user={user_id}")
        return MemberAddResult(
            user_id, error=ConflictError("The user could not be added to this group.")
        )

    def add_members(
        self, conversation_id: int, acting_user_id: int, user_ids: Iterable[int]
    ) -> List[MemberAddResult]:
        """
        Add users to a group, best effort per id.

        Admin rights are checked before any insert and again inside each
        id's own transaction, so an unknown id does not undo the others and a
        group deleted mid-batch (or an admin demoted) stops further inserts.
        Ids that are already members count as success. When no id succeeded
        at all the first failure is raised.
        """
        user_ids = list(dict.fromkeys(user_ids or []))
        if not user_ids:
            raise InvalidArgumentError("User id list cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            load_group(session, conversation_id)
            MembershipEngine(session).require_admin(conversation_id, acting_user_id)

        results = [
            self._add_one(conversation_id, acting_user_id, user_id) for user_id in user_ids
        ]

        added = [r.user_id for r in results if r.outcome == ADDED]
        if added:
            logger.info(f"group_members_added id={conversation_id} users={added}")

        if not any(r.ok for r in results):
            raise results[0].error
        return results

    def remove_member(self, conversation_id: int, acting_user_id: int, target_user_id: int):
        """
        Remove ``target_user_id`` from a group.

        Anyone may leave; removing somebody else requires admin rights. When
        the last admin leaves, the earliest remaining member is promoted, and
        when the last member leaves the group is deleted.
        """
        with self.db.transaction(self.timeout) as session:
            load_group(session, conversation_id)
            membership = MembershipEngine(session)

            if acting_user_id != target_user_id:
                membership.require_admin(conversation_id, acting_user_id)

            result = session.execute(
                delete(ConversationMember).where(
                    ConversationMember.conversation_id == conversation_id,
                    ConversationMember.user_id == target_user_id,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError("The user is not a member of this group.")

            self._keep_group_consistent(session, conversation_id)

        logger.info(
            f"group_member_removed id={conversation_id} user={target_user_id} by={acting_user_id}"
        )

    def _keep_group_consistent(self, session: Session, conversation_id: int):
        remaining = session.scalar(
            select(func.count())
            .select_from(ConversationMember)
            .where(ConversationMember.conversation_id == conversation_id)
        )
        if remaining == 0:
            session.execute(delete(Conversation).where(Conversation.id == conversation_id))
            logger.info(f"group_deleted_empty id={conversation_id}")
            return

        has_admin = session.scalar(
            select(ConversationMember.user_id)
            .where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.is_admin.is_(True),
            )
            .limit(1)
        )
        if has_admin is not None:
            return

        successor = session.scalar(
            select(ConversationMember.user_id)
            .where(ConversationMember.conversation_id == conversation_id)
            .order_by(ConversationMember.joined_at, ConversationMember.user_id)
            .limit(1)
        )
        session.execute(
            update(ConversationMember)
            .where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.user_id == successor,
            )
            .values(is_admin=True)
        )
        logger.info(f"group_admin_promoted id={conversation_id} user={successor}")

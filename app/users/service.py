import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from app.core.database import Database
from app.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from .models import User
from .schemas import UserData


logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def to_user_data(user: User) -> UserData:
    return UserData(id=user.id, name=user.name, photo_url=user.photo_url or "")


class UserService:
    """Registration, profile updates and user search."""

    def __init__(self, db: Database, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout

    def _find_id_by_name(self, name: str) -> Optional[int]:
        with self.db.transaction(self.timeout) as session:
            return session.scalar(select(User.id).where(User.name == name))

    def login(self, name: str) -> Tuple[int, bool]:
        """
        Return ``(user_id, created)`` for ``name``, registering it on first use.

        Two clients registering the same new name at once both end up with
        the id of whichever insert won.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("Name cannot be empty.")

        user_id = self._find_id_by_name(name)
        if user_id is not None:
            logger.info(f"user_login_success name={name} id={user_id}")
            return user_id, False

        try:
            with self.db.transaction(self.timeout) as session:
                user = User(name=name, photo_url="")
                session.add(user)
                session.flush()
                user_id = user.id
        except IntegrityError:
            user_id = self._find_id_by_name(name)
            if user_id is None:
                raise
            return user_id, False

        logger.info(f"user_registered name={name} id={user_id}")
        return user_id, True

    def user_exists(self, user_id: int) -> bool:
        with self.db.transaction(self.timeout) as session:
            return session.get(User, user_id) is not None

    def get_user(self, user_id: int) -> UserData:
        with self.db.transaction(self.timeout) as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            return to_user_data(user)

    def set_name(self, user_id: int, new_name: str):
        new_name = (new_name or "").strip()
        if not new_name:
            raise InvalidArgumentError("Name cannot be empty.")

        try:
            with self.db.transaction(self.timeout) as session:
                result = session.execute(
                    update(User).where(User.id == user_id).values(name=new_name)
                )
                if result.rowcount == 0:
                    raise NotFoundError("User not found.")
        except IntegrityError:
            raise ConflictError("Name already in use.")

        logger.info(f"user_renamed id={user_id} name={new_name}")

    def set_photo(self, user_id: int, photo_url: str):
        with self.db.transaction(self.timeout) as session:
            result = session.execute(
                update(User).where(User.id == user_id).values(photo_url=photo_url)
            )
            if result.rowcount == 0:
                raise NotFoundError("User not found.")

    def search_users(self, pattern: str) -> List[UserData]:
        """Substring match on the display name, capped at SEARCH_LIMIT rows."""
        with self.db.transaction(self.timeout) as session:
            users = session.scalars(
                select(User)
                .where(User.name.contains(pattern, autoescape=True))
                .order_by(User.name)
                .limit(SEARCH_LIMIT)
            ).all()
            return [to_user_data(user) for user in users]

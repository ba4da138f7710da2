import logging
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import Settings
from app.core.database import Database
from app.chat.conversations import ConversationManager
from app.chat.messages import MessageManager
from app.chat.queries import ConversationQueries
from app.users.service import UserService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_user_service(
    db: Database = Depends(get_database), settings: Settings = Depends(get_settings)
) -> UserService:
    return UserService(db, timeout=settings.request_timeout)


def get_conversation_manager(
    db: Database = Depends(get_database), settings: Settings = Depends(get_settings)
) -> ConversationManager:
    return ConversationManager(db, timeout=settings.request_timeout)


def get_message_manager(
    db: Database = Depends(get_database), settings: Settings = Depends(get_settings)
) -> MessageManager:
    return MessageManager(db, timeout=settings.request_timeout)


def get_conversation_queries(
    db: Database = Depends(get_database), settings: Settings = Depends(get_settings)
) -> ConversationQueries:
    return ConversationQueries(db, timeout=settings.request_timeout)


def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    users: UserService = Depends(get_user_service),
) -> int:
    """
    Resolve the caller's user id from ``Authorization: Bearer <id>``.

    The token is the numeric identifier returned by POST /session; it must
    belong to an existing user.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        user_id = int(credentials.credentials)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if user_id <= 0 or not users.user_exists(user_id):
        logger.info(f"auth_rejected user_id={user_id}")
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id

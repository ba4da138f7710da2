import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile

from app.core.config import Settings
from app.core.dependencies import (
    get_conversation_manager,
    get_conversation_queries,
    get_message_manager,
    get_settings,
    verify_token,
)
from app.utils.uploads import simulate_photo_upload
from .conversations import ConversationManager
from .messages import MessageManager
from .queries import ConversationQueries
from .schemas import (
    ConversationDetailsModel,
    CreateDirectConversationModel,
    CreateDirectConversationResponseModel,
    ForwardMessageModel,
    ForwardMessageResponseModel,
    GetConversationsResponseModel,
    ReactionModel,
    SendMessageResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_my_conversations(
    user_id: int = Depends(verify_token),
    queries: ConversationQueries = Depends(get_conversation_queries),
):
    """
    Retrieve all conversations of the authenticated user.

    The result is typically used to populate the chat sidebar.

    **Returns**
    - `conversations`: List of conversation objects, most recent activity first
        - `id`, `name`, `kind` (`direct` or `group`), `photo_url`
        - `members`: id, name, photo and admin flag of every member
        - `last_message`: The latest message, if any

    **Errors**
    - 401: Unauthorized
    """
    return {"conversations": queries.get_conversations_for_user(user_id)}


@router.post(
    "/conversations",
    response_model=CreateDirectConversationResponseModel,
    status_code=201,
)
def start_direct_conversation(
    data: CreateDirectConversationModel,
    response: Response,
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
):
    """
    Get or create a direct (1-on-1) conversation with another user.

    If a direct conversation between the two users already exists, it is
    returned (200). Otherwise it is created with both users as members (201).

    **Input**
    - `target_user_id`: id of the other user

    **Returns**
    - `conversation_id`: id of the direct conversation
    - `is_new`: Whether the conversation was newly created

    **Errors**
    - 400: Conversation with yourself
    - 401: Unauthorized
    - 404: Target user does not exist
    """
    conversation_id, created = manager.create_or_get_direct(user_id, data.target_user_id)
    if not created:
        response.status_code = 200
    return {"conversation_id": conversation_id, "is_new": created}


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailsModel,
    status_code=200,
)
def get_conversation(
    conversation_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(verify_token),
    queries: ConversationQueries = Depends(get_conversation_queries),
):
    """
    Retrieve a conversation with its members and messages.

    Messages are ordered from oldest to newest. With `limit`/`offset` only a
    page is returned; `offset` counts back from the newest message.

    **Errors**
    - 401: Unauthorized
    - 403: User is not a member of the conversation
    - 404: Conversation does not exist
    """
    conversation, messages = queries.get_conversation_with_messages(
        conversation_id, user_id, limit=limit, offset=offset
    )
    return {"conversation": conversation, "messages": messages}


@router.post(
    "/conversations/{conversation_id}",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    conversation_id: int,
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    reply_to: Optional[int] = Form(None),
    forwarded: bool = Form(False),
    user_id: int = Depends(verify_token),
    manager: MessageManager = Depends(get_message_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Send a text or photo message to a conversation (multipart form).

    **Input**
    - `content`: Message text, or
    - `image`: A photo file
    - `reply_to`: Optional id of a message in the same conversation
    - `forwarded`: Optional flag

    Exactly one of `content` and `image` must be present.

    **Returns**
    - `message_id`: id of the new message

    **Errors**
    - 400: Neither or both of text and photo
    - 401: Unauthorized
    - 403: User is not a member of the conversation
    - 404: Conversation or reply target not found
    """
    has_content = bool(content and content.strip())
    has_photo = image is not None and bool(image.filename)

    if has_content == has_photo:
        raise HTTPException(
            status_code=400,
            detail="A message must contain either text ('content') or a photo ('image').",
        )

    if has_photo:
        photo_url = simulate_photo_upload(
            image,
            "conversations",
            conversation_id,
            settings.photo_base_url,
            settings.max_photo_bytes,
        )
        message_id = manager.create_photo_message(
            conversation_id, user_id, photo_url, reply_to_id=reply_to, is_forwarded=forwarded
        )
    else:
        message_id = manager.create_message(
            conversation_id, user_id, content, reply_to_id=reply_to, is_forwarded=forwarded
        )

    return {"message_id": message_id}


@router.delete("/messages/{message_id}", status_code=204)
def delete_message(
    message_id: int,
    user_id: int = Depends(verify_token),
    manager: MessageManager = Depends(get_message_manager),
):
    """
    Delete one of your own messages.

    **Errors**
    - 401: Unauthorized
    - 404: Message not found or not sent by you
    """
    manager.delete_message(message_id, user_id)
    return Response(status_code=204)


@router.post(
    "/messages/{message_id}/forward",
    response_model=ForwardMessageResponseModel,
    status_code=200,
)
def forward_message(
    message_id: int,
    data: ForwardMessageModel,
    user_id: int = Depends(verify_token),
    manager: MessageManager = Depends(get_message_manager),
):
    """
    Forward a message into one or more conversations.

    Every target is attempted independently. The response lists the new
    message ids and the outcome per target (`forwarded`, `forbidden`,
    `not_found`).

    **Errors**
    - 401: Unauthorized
    - 403/404: Every target failed; the status of the first failure
    """
    results = manager.forward_message_many(message_id, user_id, data.conversation_ids)

    forwarded = [r.message_id for r in results if r.ok]
    if not forwarded:
        raise results[0].error

    return {
        "forwarded_message_ids": forwarded,
        "results": [
            {"conversation_id": r.conversation_id, "outcome": r.outcome, "message_id": r.message_id}
            for r in results
        ],
    }


@router.post("/messages/{message_id}/reactions", status_code=204)
def comment_message(
    message_id: int,
    data: ReactionModel,
    user_id: int = Depends(verify_token),
    manager: MessageManager = Depends(get_message_manager),
):
    """
    React to a message. A second reaction replaces the first.

    **Errors**
    - 401: Unauthorized
    - 404: Message not found
    """
    manager.add_reaction(message_id, user_id, data.emoji)
    return Response(status_code=204)


@router.delete("/messages/{message_id}/reactions", status_code=204)
def uncomment_message(
    message_id: int,
    user_id: int = Depends(verify_token),
    manager: MessageManager = Depends(get_message_manager),
):
    """
    Remove your reaction from a message.

    **Errors**
    - 401: Unauthorized
    - 404: No reaction to remove
    """
    manager.remove_reaction(message_id, user_id)
    return Response(status_code=204)

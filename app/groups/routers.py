import logging

from fastapi import APIRouter, Depends, File, Response, UploadFile

from app.core.config import Settings
from app.core.dependencies import (
    get_conversation_manager,
    get_conversation_queries,
    get_settings,
    verify_token,
)
from app.core.errors import ConversationNotFoundError
from app.chat.conversations import ConversationManager
from app.chat.queries import ConversationQueries
from app.chat.schemas import ConversationData
from app.utils.uploads import simulate_photo_upload
from .schemas import (
    AddMembersModel,
    AddMembersResponseModel,
    CreateGroupModel,
    GroupIDResponseModel,
    GroupPhotoResponseModel,
    UpdateGroupNameModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=GroupIDResponseModel, status_code=201)
def create_group(
    data: CreateGroupModel,
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
):
    """
    Create a group conversation.

    The caller becomes a member and the group's administrator; every listed
    user is added as a regular member (duplicates are ignored).

    **Input**
    - `name`: Group title
    - `member_ids`: Ids of the initial members

    **Returns**
    - `group_id`: id of the new group

    **Errors**
    - 401: Unauthorized
    - 404: One of the member ids does not exist (nothing is created)
    """
    group_id = manager.create_group(user_id, data.name, data.member_ids)
    return {"group_id": group_id}


@router.get("/{group_id}", response_model=ConversationData, status_code=200)
def get_group_details(
    group_id: int,
    user_id: int = Depends(verify_token),
    queries: ConversationQueries = Depends(get_conversation_queries),
):
    """
    Group metadata and members (no messages).

    **Errors**
    - 401: Unauthorized
    - 403: Not a member of the group
    - 404: Group not found
    """
    group = queries.get_conversation(group_id, user_id)
    if not group.is_group:
        raise ConversationNotFoundError()
    return group


@router.put("/{group_id}/name", status_code=204)
def set_group_name(
    group_id: int,
    data: UpdateGroupNameModel,
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
):
    """
    Rename a group. Administrators only.

    **Errors**
    - 401: Unauthorized
    - 403: Not a member or not an administrator
    - 404: Group not found
    """
    manager.rename_group(group_id, user_id, data.name)
    return Response(status_code=204)


@router.put("/{group_id}/photo", response_model=GroupPhotoResponseModel, status_code=200)
def set_group_photo(
    group_id: int,
    image: UploadFile = File(...),
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a new group photo (multipart field `image`). Administrators only.

    **Errors**
    - 400: Missing or empty image
    - 401: Unauthorized
    - 403: Not a member or not an administrator
    - 404: Group not found
    """
    photo_url = simulate_photo_upload(
        image, "groups", group_id, settings.photo_base_url, settings.max_photo_bytes
    )
    manager.set_group_photo(group_id, user_id, photo_url)
    return {"photo_url": photo_url}


@router.post("/{group_id}/members", response_model=AddMembersResponseModel, status_code=200)
def add_to_group(
    group_id: int,
    data: AddMembersModel,
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
):
    """
    Add users to a group. Administrators only.

    Each id is handled independently and reported as `added`,
    `already_member` or `member_not_found`.

    **Errors**
    - 401: Unauthorized
    - 403: Not a member or not an administrator
    - 404: Group not found, or none of the users exist
    """
    results = manager.add_members(group_id, user_id, data.user_ids)
    return {"results": [{"user_id": r.user_id, "outcome": r.outcome} for r in results]}


@router.delete("/{group_id}/members/{member_id}", status_code=204)
def leave_group(
    group_id: int,
    member_id: int,
    user_id: int = Depends(verify_token),
    manager: ConversationManager = Depends(get_conversation_manager),
):
    """
    Leave a group (`member_id` is yourself) or remove another member (admins).

    **Errors**
    - 401: Unauthorized
    - 403: Removing somebody else without being an administrator
    - 404: Group not found or user not a member
    """
    manager.remove_member(group_id, user_id, member_id)
    return Response(status_code=204)

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile

from app.core.config import Settings
from app.core.dependencies import get_settings, get_user_service, verify_token
from app.utils.uploads import simulate_photo_upload
from .service import UserService
from .schemas import (
    LoginModel,
    LoginResponseModel,
    SetUserNameModel,
    PhotoResponseModel,
    SearchUsersResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/session", response_model=LoginResponseModel, status_code=201)
def do_login(data: LoginModel, users: UserService = Depends(get_user_service)):
    """
    Log in by name, registering the user on first use.

    There are no passwords: the returned identifier is used as the bearer
    token (`Authorization: Bearer <identifier>`) for every other endpoint.

    **Input**
    - `name`: 3–16 characters.

    **Returns**
    - `identifier`: The user's numeric id.

    **Errors**
    - 400/422: Invalid name
    """
    user_id, created = users.login(data.name)
    if created:
        logger.info(f"session_registered name={data.name} id={user_id}")
    return {"identifier": user_id}


@router.put("/me/name", status_code=204)
def set_my_user_name(
    data: SetUserNameModel,
    user_id: int = Depends(verify_token),
    users: UserService = Depends(get_user_service),
):
    """
    Change the caller's display name.

    **Errors**
    - 401: Unauthorized
    - 409: Name already in use
    """
    users.set_name(user_id, data.name)
    return Response(status_code=204)


@router.put("/me/photo", response_model=PhotoResponseModel, status_code=200)
def set_my_photo(
    image: UploadFile = File(...),
    user_id: int = Depends(verify_token),
    users: UserService = Depends(get_user_service),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a new profile photo (multipart field `image`).

    The upload is simulated: the returned URL is synthetic.

    **Errors**
    - 400: Missing or empty image
    - 401: Unauthorized
    - 413: Image too large
    """
    photo_url = simulate_photo_upload(
        image, "users", user_id, settings.photo_base_url, settings.max_photo_bytes
    )
    users.set_photo(user_id, photo_url)
    return {"photo_url": photo_url}


@router.get("/users/search", response_model=SearchUsersResponseModel, status_code=200)
def search_users(
    name: str = "",
    user_id: int = Depends(verify_token),
    users: UserService = Depends(get_user_service),
):
    """
    Search users whose name contains `name`.

    **Returns**
    - `users`: Up to 20 matches ordered by name.

    **Errors**
    - 400: Empty search term
    - 401: Unauthorized
    """
    if not name.strip():
        raise HTTPException(status_code=400, detail="The 'name' query parameter is required.")

    return {"users": users.search_users(name.strip())}

import os
import uuid
from fastapi import HTTPException, UploadFile


def simulate_photo_upload(
    photo: UploadFile, scope: str, owner_id: int, base_url: str, max_bytes: int
) -> str:
    """
    Pretend to store an uploaded image and return its public URL.

    Nothing is persisted; the file is only read to enforce the size limit.
    The URL has the shape ``<base_url>/<scope>/<owner_id>/<token>-<filename>``.
    """
    data = photo.file.read(max_bytes + 1)
    if not data:
        raise HTTPException(status_code=400, detail="The 'image' file is empty.")
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413, detail=f"Image too large (max {max_bytes} bytes)."
        )

    filename = os.path.basename(photo.filename or "photo").replace(" ", "_") or "photo"
    token = uuid.uuid4().hex[:12]
    return f"{base_url}/{scope}/{owner_id}/{token}-{filename}"

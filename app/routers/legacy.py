from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.audit import audit_request
from app.db import get_db
from app.errors import ApiError
from app.models import StaffProfile
from app.schemas import (
    LegacyActivityCompletionUpdate,
    LegacyActivityCreate,
    LegacyActivityRead,
    SuccessResponse,
    UploadImageResponse,
)
from app.security import require_profile
from app.services.legacy_activities import (
    create_activity,
    delete_activity,
    list_own_activities,
    set_completed,
)
from app.services.storage import (
    ObjectStorage,
    StorageError,
    build_object_key,
    get_object_storage,
)
from app.settings import get_settings

router = APIRouter(tags=["legacy"])

IMAGE_CACHE_CONTROL = "public, max-age=31536000"


@router.get("/api/activities", response_model=list[LegacyActivityRead])
def list_activities(
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> list[LegacyActivityRead]:
    return [LegacyActivityRead.model_validate(item) for item in list_own_activities(db, profile)]


@router.post("/api/activities", response_model=LegacyActivityRead, status_code=status.HTTP_201_CREATED)
def post_activity(
    payload: LegacyActivityCreate,
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> LegacyActivityRead:
    return LegacyActivityRead.model_validate(create_activity(db, profile, payload))


@router.patch("/api/activities/{activity_id}", response_model=LegacyActivityRead)
def patch_activity(
    activity_id: int,
    payload: LegacyActivityCompletionUpdate,
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> LegacyActivityRead:
    return LegacyActivityRead.model_validate(set_completed(db, profile, activity_id, payload.is_completed))


@router.delete("/api/activities/{activity_id}", response_model=SuccessResponse)
def remove_activity(
    activity_id: int,
    request: Request,
    profile: StaffProfile = Depends(require_profile),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    delete_activity(db, profile, activity_id)
    audit_request(
        db,
        request,
        actor=profile,
        action="LEGACY_ACTIVITY_DELETED",
        entity_type="activity",
        entity_id=activity_id,
    )
    return SuccessResponse()


@router.post("/api/upload-image", response_model=UploadImageResponse)
def upload_image(
    file: UploadFile = File(...),
    _profile: StaffProfile = Depends(require_profile),
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadImageResponse:
    data = file.file.read()
    if not data:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message="No file uploaded.")
    if len(data) > get_settings().max_photo_bytes:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message="File is too large.")
    try:
        stored = storage.put(build_object_key(file.filename), data, file.content_type)
    except StorageError as exc:
        raise ApiError(status_code=502, code="PHOTO_UPLOAD_FAILED", message="Photo upload failed.") from exc
    return UploadImageResponse(key=stored.key, url=storage.public_url(stored.key))


@router.get("/api/images/{key:path}")
def get_image(
    key: str,
    request: Request,
    storage: ObjectStorage = Depends(get_object_storage),
) -> Response:
    try:
        stored = storage.get(key)
    except StorageError as exc:
        raise ApiError(status_code=502, code="PHOTO_UPLOAD_FAILED", message="Image could not be read.") from exc
    if stored is None:
        raise ApiError(status_code=404, code="IMAGE_NOT_FOUND", message="Image not found.")

    headers = {"Cache-Control": IMAGE_CACHE_CONTROL, "ETag": stored.etag}
    if request.headers.get("if-none-match") == stored.etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    return Response(content=stored.data, media_type=stored.content_type, headers=headers)

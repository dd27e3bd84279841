"""
api/routes/v1/users.py -- Account REST endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /users                              -- register (public)
  POST   /users/login                        -- password login, returns bearer token (public)
  GET    /users                              -- paginated list, optional ?username= filter (public)
  GET    /users/me                           -- caller's own account (auth)
  POST   /users/upload                       -- upload profile image for caller (auth)
  GET    /users/profile-image/{filename}     -- serve a stored profile image (public)
  GET    /users/{account_id}                 -- account detail (public)
  PUT    /users/{account_id}                 -- profile update (self or admin)
  PUT    /users/{account_id}/role            -- role change (admin)
  DELETE /users/{account_id}                 -- delete account (self or admin)

Handlers stay thin: they parse input, resolve the caller with get_identity,
and call AccountService. Authorization is decided inside the service.
AccountServiceError subclasses propagate to the handler in api/main.py,
which maps each error code to an HTTP status.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from accounts.images import DirectoryImageStore, generate_image_filename
from accounts.service import AccountService
from api.models import (
    AccountPageResponse,
    AccountResponse,
    ErrorDetail,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    RoleUpdate,
)
from auth.dependencies import get_identity
from auth.models import Identity
from core.errors import NotFoundError, ValidationError

logger = logging.getLogger("accountsvc.api")

router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


@router.post("/users", response_model=AccountResponse, status_code=201)
async def register(request: Request, body: RegisterRequest) -> AccountResponse:
    """Create a USER account. 409 if the username or email is taken."""
    view = await _service(request).register(body.name, body.username, body.email, body.password)
    return AccountResponse.from_view(view)


@router.post("/users/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email + password for a bearer token.

    Wrong password and unknown email produce the same 401 bad_credentials.
    """
    service = _service(request)
    token = await service.login(body.email, body.password)
    resp = JSONResponse(
        content=LoginResponse(access_token=token, expires_in=service.tokens.ttl_seconds).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Listing and caller-scoped routes (registered before /users/{account_id})
# ---------------------------------------------------------------------------


@router.get("/users", response_model=AccountPageResponse)
async def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    username: str | None = Query(default=None, max_length=255),
) -> AccountPageResponse:
    """List accounts by ascending id. limit above 100 is capped to 100."""
    result = await _service(request).list_page(page=page, limit=limit, username=username or None)
    return AccountPageResponse.from_page(result, route=request.url.path, username=username or None)


@router.get("/users/me", response_model=AccountResponse)
async def me(request: Request, identity: Identity = Depends(get_identity)) -> AccountResponse:
    view = await _service(request).get_current(identity)
    return AccountResponse.from_view(view)


@router.post("/users/upload", response_model=AccountResponse)
async def upload_profile_image(
    request: Request,
    file: UploadFile,
    identity: Identity = Depends(get_identity),
) -> AccountResponse:
    """Store an image and attach it to the caller's account.

    The caller is authorized and its account confirmed before any bytes are
    written. Only image/* content types are accepted, capped at
    MAX_IMAGE_BYTES. The file is removed again if recording it fails, and the
    image it replaces is removed once the new name is stored.
    """
    service = _service(request)
    service.authorize("record_profile_image", identity)

    content_type = (file.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise ValidationError("Only image uploads are accepted.")

    max_bytes: int = request.app.state.max_image_bytes
    raw = await file.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Image exceeds the {max_bytes} byte limit.",
            ).model_dump(),
        )

    previous = (await service.get_current(identity)).profile_image

    images: DirectoryImageStore = request.app.state.image_store
    filename = generate_image_filename(file.filename or "")
    await asyncio.to_thread(images.save, filename, raw)
    try:
        view = await service.record_profile_image(identity, filename)
    except Exception:
        await asyncio.to_thread(images.delete, filename)
        raise
    logger.info("Stored profile image %s for account %d", filename, identity.account_id)

    if previous and previous != filename:
        try:
            await asyncio.to_thread(images.delete, previous)
        except (OSError, ValidationError):
            logger.warning("Could not remove superseded profile image %s", previous)
    return AccountResponse.from_view(view)


@router.get("/users/profile-image/{filename}")
async def profile_image(request: Request, filename: str) -> FileResponse:
    images: DirectoryImageStore = request.app.state.image_store
    if not images.exists(filename):
        raise NotFoundError("Image not found.")
    return FileResponse(images.path_for(filename))


# ---------------------------------------------------------------------------
# Single-account routes
# ---------------------------------------------------------------------------


@router.get("/users/{account_id}", response_model=AccountResponse)
async def get_user(request: Request, account_id: int) -> AccountResponse:
    view = await _service(request).get_by_id(account_id)
    if view is None:
        raise NotFoundError()
    return AccountResponse.from_view(view)


@router.put("/users/{account_id}", response_model=AccountResponse)
async def update_user(
    request: Request,
    account_id: int,
    body: ProfileUpdate,
    identity: Identity = Depends(get_identity),
) -> AccountResponse:
    """Update name and/or username. Self or admin only."""
    view = await _service(request).update_profile(identity, account_id, body.model_dump(exclude_unset=True))
    return AccountResponse.from_view(view)


@router.put("/users/{account_id}/role", response_model=AccountResponse)
async def change_role(
    request: Request,
    account_id: int,
    body: RoleUpdate,
    identity: Identity = Depends(get_identity),
) -> AccountResponse:
    """Change an account's role. Admin only."""
    view = await _service(request).change_role(identity, account_id, body.role)
    return AccountResponse.from_view(view)


@router.delete("/users/{account_id}", status_code=204)
async def delete_user(
    request: Request,
    account_id: int,
    identity: Identity = Depends(get_identity),
) -> Response:
    """Delete an account. Self or admin only."""
    await _service(request).delete_account(identity, account_id)
    return Response(status_code=204)

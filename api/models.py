"""
API request and response models for the account service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in accounts/models.py,
which own the internal domain representation. Route handlers map between the
two.

Request models ignore unknown fields (pydantic's default), so a client that
sends role or password to a profile update has them dropped here already;
the service drops them again.
"""

from typing import Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from accounts.models import AccountView, Page
from auth.models import Role

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users. Any role field is ignored."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Only these fields can change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    username: Optional[str] = Field(default=None, min_length=1, max_length=255)


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/role."""

    role: Role


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Outward account shape. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    username: str
    email: str
    role: Role
    profile_image: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            id=view.id,
            name=view.name,
            username=view.username,
            email=view.email,
            role=view.role,
            profile_image=view.profile_image,
            created_at=view.created_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class PageMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_page: int
    item_count: int
    items_per_page: int
    total_items: int
    total_pages: int


class PageLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    first: str
    previous: str
    next: str
    last: str


class AccountPageResponse(BaseModel):
    """Response for GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    items: list[AccountResponse]
    meta: PageMeta
    links: PageLinks

    @classmethod
    def from_page(cls, page: Page, route: str, username: Optional[str] = None) -> "AccountPageResponse":
        """Build the envelope, with links that keep the username filter."""
        extra = f"&username={quote(username)}" if username else ""

        def link(n: int) -> str:
            return f"{route}?limit={page.limit}&page={n}{extra}"

        last_page = max(page.total_pages, 1)
        return cls(
            items=[AccountResponse.from_view(v) for v in page.items],
            meta=PageMeta(
                current_page=page.page,
                item_count=page.item_count,
                items_per_page=page.limit,
                total_items=page.total_items,
                total_pages=page.total_pages,
            ),
            links=PageLinks(
                first=link(1),
                previous=link(page.page - 1) if page.page > 1 else "",
                next=link(page.page + 1) if page.page < page.total_pages else "",
                last=link(last_page),
            ),
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]

from datetime import datetime
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Credentials(BaseModel):
    email: str | None = None
    password: str | None = None


class UserRead(BaseModel):
    id: str
    email: str

    class Config:
        from_attributes = True


class SessionRead(CamelModel):
    token: str
    expires_at: datetime
    user: UserRead


class CurrentUser(BaseModel):
    user: UserRead


class ContentCreated(CamelModel):
    id: str
    link: str
    expires_at: datetime
    delete_token: str
    view_count: int = 0
    max_views: int | None = None


class PasswordPayload(BaseModel):
    password: str | None = None


class DeleteTokenPayload(CamelModel):
    delete_token: str | None = None


class ContentView(CamelModel):
    type: str
    text: str | None = None
    original_name: str | None = None
    requires_password: bool
    view_count: int | None = None
    max_views: int | None = None


class ViewCounts(CamelModel):
    view_count: int
    max_views: int | None = None


class ContentSummary(CamelModel):
    id: str
    type: str
    original_name: str | None = None
    created_at: datetime
    expires_at: datetime
    view_count: int
    max_views: int | None = None


class ContentList(BaseModel):
    items: list[ContentSummary]


class Success(BaseModel):
    success: bool = True

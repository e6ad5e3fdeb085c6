"""
Pydantic models for the smaller integrations: Front, Flickr and 1Password.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class FrontExport(BaseModel):
    """
    A Front analytics export.

    Attributes:
        id: Export ID (e.g., "exp_1a2b")
        status: "pending", "running", "done" or "failed"
        progress: Completion percentage
        url: Download URL once the export is done
    """
    id: str
    status: Optional[str] = None
    progress: Optional[float] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    created_at: Optional[float] = None

    class Config:
        extra = "ignore"


class FlickrUser(BaseModel):
    nsid: str
    username: Optional[str] = None

    class Config:
        extra = "ignore"


class FlickrPage(BaseModel):
    """Paging envelope shared by Flickr list responses."""
    page: int = 1
    pages: int = 1
    total: Optional[int] = None

    class Config:
        extra = "ignore"

    @property
    def has_next_page(self) -> bool:
        return self.page < self.pages


class OnePasswordURL(BaseModel):
    href: str
    primary: bool = False
    label: Optional[str] = None

    class Config:
        extra = "ignore"


class OnePasswordItem(BaseModel):
    """
    An item as returned by ``op item list/get --format json``.

    ``additional_information`` holds the username for login items.
    """
    id: str
    title: str = ""
    category: Optional[str] = None
    tags: List[str] = []
    urls: List[OnePasswordURL] = []
    additional_information: Optional[str] = None
    fields: List[dict] = []

    class Config:
        extra = "ignore"

    def field_value(self, label: str) -> Optional[str]:
        for field in self.fields:
            if field.get("label") == label or field.get("id") == label:
                return field.get("value")
        return None

    @property
    def username(self) -> Optional[str]:
        return self.field_value("username") or self.additional_information


class OnePasswordAccount(BaseModel):
    url: str
    email: Optional[str] = None
    user_uuid: Optional[str] = None
    account_uuid: Optional[str] = None

    class Config:
        extra = "ignore"


class PHPErrorSummary(BaseModel):
    """One distinct PHP error with its occurrence count."""
    message: str
    severity: str
    timestamp: str
    count: int = Field(1, ge=1)

"""
Pydantic models for WordPress.com and Jetpack API responses.

Reference: https://developer.wordpress.com/docs/api/
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field


class WPCOMSite(BaseModel):
    """
    Represents a site visible to the WordPress.com account.

    Attributes:
        id: WordPress.com blog ID
        name: Site title
        url: Site URL with scheme (e.g., "https://example.com")
        jetpack: Whether the site is connected through Jetpack
        is_wpcom_atomic: Whether the site is hosted on WordPress.com Atomic
        is_private: Whether the site is private
        is_coming_soon: Whether the site shows a coming-soon page
    """
    id: int = Field(..., alias="ID")
    name: Optional[str] = None
    url: str = Field("", alias="URL")
    jetpack: bool = False
    is_wpcom_atomic: bool = False
    is_private: bool = False
    is_coming_soon: bool = False

    class Config:
        extra = "ignore"
        populate_by_name = True


class WPCOMUser(BaseModel):
    """A user on a WordPress.com or Jetpack-connected site."""
    id: int = Field(..., alias="ID")
    login: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None

    class Config:
        extra = "ignore"
        populate_by_name = True


class JetpackBlog(BaseModel):
    """Entry of the jetpack-blogs listing."""
    userblog_id: int
    blogname: Optional[str] = None
    siteurl: str = ""

    class Config:
        extra = "ignore"

    @property
    def domain(self) -> str:
        return urlparse(self.siteurl).hostname or self.siteurl


class JetpackModule(BaseModel):
    module: str
    name: Optional[str] = None
    activated: bool = False
    description: Optional[str] = None

    class Config:
        extra = "ignore"


class SitePlugin(BaseModel):
    """
    A plugin installed on a site.

    Attributes:
        slug: Plugin directory (e.g., "woocommerce")
        file: Main plugin file relative to the plugins directory, when known
        name: Human readable plugin name
        text_domain: The plugin's translation text domain
        version: Installed version
        active: Whether the plugin is active
    """
    slug: str
    file: str = ""
    name: Optional[str] = None
    text_domain: Optional[str] = None
    version: Optional[str] = None
    active: bool = False

    class Config:
        extra = "ignore"


class StagingSite(BaseModel):
    id: int
    url: str = ""

    class Config:
        extra = "ignore"


class AtomicTransfer(BaseModel):
    """Status of an automated transfer to Atomic (also used for staging site creation)."""
    transfer_id: Optional[int] = None
    blog_id: Optional[int] = None
    status: Optional[str] = None

    class Config:
        extra = "ignore"


class PublicizeConnection(BaseModel):
    service: str = ""
    external_name: Optional[str] = None
    external_profile_url: Optional[str] = Field(None, alias="external_profile_URL")
    issued: Optional[str] = None
    status: Optional[str] = None
    expires: Optional[str] = None

    class Config:
        extra = "ignore"
        populate_by_name = True


class StatsSummary(BaseModel):
    views: int = 0
    visitors: int = 0

    class Config:
        extra = "ignore"


class WooCommerceOrderStats(BaseModel):
    total_gross_sales: float = 0
    total_net_sales: float = 0
    total_orders: int = 0
    total_products: int = 0

    class Config:
        extra = "ignore"

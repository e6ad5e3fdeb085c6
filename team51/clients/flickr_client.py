"""
Flickr API Client

Read-only access to a user's photostream, albums and comments. Every call
goes to the single REST endpoint with the method name as a parameter.

Reference: https://www.flickr.com/services/api/
"""

import logging
from typing import Any, Optional

import httpx

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.misc_models import FlickrUser

logger = logging.getLogger(__name__)


class FlickrAPIError(APIError):
    """Custom exception for Flickr API errors."""
    provider = "Flickr"


class FlickrClient(BaseAPIClient):
    provider = "Flickr"
    error_class = FlickrAPIError

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        settings = settings or get_settings()
        validate_settings(settings, ["flickr_api_key"])
        self.api_key = settings.flickr_api_key

        super().__init__(
            base_url="https://api.flickr.com/services/rest",
            http_client=http_client,
            timeout=settings.http_timeout,
        )

    def call_method(self, method: str, **arguments) -> Any:
        """
        Call a Flickr API method, e.g. ``call_method("flickr.people.getPhotos", user_id=...)``.

        Raises:
            FlickrAPIError: On HTTP errors or when ``stat`` is not "ok"
        """
        params = {
            "method": method,
            "api_key": self.api_key,
            "format": "json",
            "nojsoncallback": 1,
            **{key: value for key, value in arguments.items() if value is not None},
        }
        response_data = self._make_request("GET", "/", params=params)
        if response_data.get("stat") != "ok":
            message = response_data.get("message", "Unknown error")
            logger.error(f"❌ Flickr API error ({method}): {message}")
            raise FlickrAPIError(response_data.get("code", 200), message, method)
        return response_data

    def find_user_by_username(self, username: str) -> FlickrUser:
        return FlickrUser(**self.call_method("flickr.people.findByUsername", username=username)["user"])

    def list_photosets(self, user_id: str) -> dict:
        return self.call_method("flickr.photosets.getList", user_id=user_id)["photosets"]

    def list_photoset_photos(self, photoset_id: str, page: int = 1, per_page: int = 500) -> dict:
        return self.call_method(
            "flickr.photosets.getPhotos", photoset_id=photoset_id, page=page, per_page=per_page
        )["photoset"]

    def list_user_photos(self, user_id: str, extras: Optional[str] = None, page: int = 1, per_page: int = 50) -> dict:
        return self.call_method(
            "flickr.people.getPhotos", user_id=user_id, extras=extras, page=page, per_page=per_page
        )["photos"]

    def get_photo_sizes(self, photo_id: str) -> dict:
        return self.call_method("flickr.photos.getSizes", photo_id=photo_id)["sizes"]

    def list_photo_comments(self, photo_id: str) -> list:
        return self.call_method("flickr.photos.comments.getList", photo_id=photo_id)["comments"].get("comment", [])

    def download(self, url: str) -> bytes:
        response = self._send("GET", url, follow_redirects=True)
        if response.status_code >= 400:
            raise FlickrAPIError(response.status_code, "Media download failed", url)
        return response.content

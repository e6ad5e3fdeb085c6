"""
Front API Client

Only the analytics export endpoints are used: conversation exports are
requested for a date range, polled, and downloaded by hand.

Reference: https://dev.frontapp.com/reference
"""

from datetime import datetime
from typing import List, Optional

import httpx

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.misc_models import FrontExport


class FrontAPIError(APIError):
    """Custom exception for Front API errors."""
    provider = "Front"


class FrontClient(BaseAPIClient):
    provider = "Front"
    error_class = FrontAPIError

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        settings = settings or get_settings()
        validate_settings(settings, ["front_api_endpoint", "front_api_token"])

        super().__init__(
            base_url=settings.front_api_endpoint,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Bearer {settings.front_api_token}",
            },
            http_client=http_client,
            timeout=settings.http_timeout,
        )

    def create_export(self, start: datetime, end: datetime) -> FrontExport:
        """
        Request an export of all conversations between two dates.

        Raises:
            ValueError: If start is not before end
        """
        if start >= end:
            raise ValueError("The start date must be before the end date")

        response_data = self._make_request(
            "POST",
            "exports",
            json_data={"start": int(start.timestamp()), "end": int(end.timestamp())},
        )
        return FrontExport(**response_data)

    def get_export(self, export_id: str) -> FrontExport:
        return FrontExport(**self._make_request("GET", f"analytics/exports/{export_id}"))

    def list_exports(self) -> List[FrontExport]:
        response_data = self._make_request("GET", "exports")
        return [FrontExport(**export) for export in response_data.get("_results", [])]

"""Integration settings document maintained by the admin surface.

Stored at ``settings/integrations``.  Every field is optional: an admin may
override only the access token and leave the page ID to static config.
The sync engine only ever reads this document.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FacebookIntegration(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    page_id: Optional[str] = None
    access_token: Optional[str] = None


class YouTubeIntegration(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    channel_id: Optional[str] = None
    api_key: Optional[str] = None


class IntegrationSettings(BaseModel):
    """Parsed ``settings/integrations`` document.

    Attributes:
        facebook: Facebook overrides, or ``None`` when the section is absent.
        youtube: YouTube overrides, or ``None`` when the section is absent.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    facebook: Optional[FacebookIntegration] = None
    youtube: Optional[YouTubeIntegration] = None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> IntegrationSettings | None:
        if data is None:
            return None
        return cls.model_validate(data)

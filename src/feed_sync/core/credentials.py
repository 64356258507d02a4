"""Credential resolution for the pollers.

Static credentials come from :class:`~feed_sync.config.settings.Settings`
(environment / ``.env``).  The optional ``settings/integrations`` document,
maintained by the admin surface, overrides them field by field: a document
that only carries an access token replaces only the token.

Resolution is split in two steps so that it happens once per run:

1. :func:`load_integration_settings` reads the document from the store.
2. :func:`resolve_facebook_credentials` / :func:`resolve_youtube_credentials`
   merge it with static config.  Both are pure functions.

The resolved value objects are immutable; a poller never re-reads
credentials mid-run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from feed_sync.config.settings import Settings
from feed_sync.core.exceptions import MissingCredentialsError
from feed_sync.core.schemas.integrations import IntegrationSettings
from feed_sync.core.storage import INTEGRATIONS_KEY, SETTINGS_COLLECTION, DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FacebookCredentials:
    """Resolved Facebook Page credentials (either field may be ``None``)."""

    page_id: Optional[str] = None
    access_token: Optional[str] = None

    def require(self) -> FacebookCredentials:
        """Return ``self`` if complete.

        Raises:
            MissingCredentialsError: If the page ID or token is missing.
        """
        missing = [
            name
            for name, value in (("page_id", self.page_id), ("access_token", self.access_token))
            if not value
        ]
        if missing:
            raise MissingCredentialsError("facebook", missing)
        return self


@dataclass(frozen=True)
class YouTubeCredentials:
    """Resolved YouTube channel credentials (either field may be ``None``)."""

    channel_id: Optional[str] = None
    api_key: Optional[str] = None

    def require(self) -> YouTubeCredentials:
        """Return ``self`` if complete.

        Raises:
            MissingCredentialsError: If the channel ID or API key is missing.
        """
        missing = [
            name
            for name, value in (("channel_id", self.channel_id), ("api_key", self.api_key))
            if not value
        ]
        if missing:
            raise MissingCredentialsError("youtube", missing)
        return self


@dataclass(frozen=True)
class ResolvedCredentials:
    """Credentials for both sources, resolved once at the start of a run."""

    facebook: FacebookCredentials
    youtube: YouTubeCredentials


def _prefer(override: Optional[str], fallback: Optional[str]) -> Optional[str]:
    # Empty strings in the settings document count as "not set".
    return override or fallback or None


def resolve_facebook_credentials(
    settings: Settings,
    integrations: IntegrationSettings | None,
) -> FacebookCredentials:
    """Merge the integrations document over static Facebook config."""
    override = integrations.facebook if integrations is not None else None
    return FacebookCredentials(
        page_id=_prefer(override.page_id if override else None, settings.fb_page_id),
        access_token=_prefer(
            override.access_token if override else None, settings.fb_access_token
        ),
    )


def resolve_youtube_credentials(
    settings: Settings,
    integrations: IntegrationSettings | None,
) -> YouTubeCredentials:
    """Merge the integrations document over static YouTube config."""
    override = integrations.youtube if integrations is not None else None
    return YouTubeCredentials(
        channel_id=_prefer(
            override.channel_id if override else None, settings.youtube_channel_id
        ),
        api_key=_prefer(override.api_key if override else None, settings.youtube_api_key),
    )


def resolve_credentials(
    settings: Settings,
    integrations: IntegrationSettings | None,
) -> ResolvedCredentials:
    """Resolve both sources at once."""
    return ResolvedCredentials(
        facebook=resolve_facebook_credentials(settings, integrations),
        youtube=resolve_youtube_credentials(settings, integrations),
    )


async def load_integration_settings(store: DocumentStore) -> IntegrationSettings | None:
    """Read and parse the ``settings/integrations`` document.

    A malformed document is logged and treated as absent so that static
    configuration still applies.

    Returns:
        The parsed document, or ``None`` when it does not exist or is invalid.
    """
    data = await store.get(SETTINGS_COLLECTION, INTEGRATIONS_KEY)
    try:
        return IntegrationSettings.from_document(data)
    except ValueError as exc:
        logger.warning("credentials: ignoring malformed integrations document: %s", exc)
        return None

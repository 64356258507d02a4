"""YouTube source package.

Provides the channel poller (:mod:`.collector`), its Celery task
(:mod:`.tasks`) and the manual-trigger router (:mod:`.router`).

Credentials (static config, overridable by ``settings/integrations``)::

    YOUTUBE_API_KEY
    YOUTUBE_CHANNEL_ID       # or YOUTUBE_CHANNEL_HANDLE, resolved per run
"""

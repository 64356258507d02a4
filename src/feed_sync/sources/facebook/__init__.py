"""Facebook source package.

Provides the Page feed poller (:mod:`.collector`), the live-status
reconciler (:mod:`.live`), their Celery tasks (:mod:`.tasks`) and the
webhook / manual-trigger router (:mod:`.router`).

Credentials (static config, overridable by ``settings/integrations``)::

    FB_PAGE_ID
    FB_ACCESS_TOKEN
    FB_VERIFY_TOKEN      # webhook handshake
    FB_APP_SECRET        # optional webhook signature check
"""

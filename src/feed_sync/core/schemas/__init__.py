"""Pydantic records shared by the pollers and the storage layer.

Sub-modules:
    post         : Post, PostType, Author
    diagnostics  : SyncDebugRecord, PageTelemetry, SyncErrorInfo
    integrations : IntegrationSettings
"""

from __future__ import annotations

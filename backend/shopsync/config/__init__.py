"""Runtime configuration for the sync pipeline."""

from shopsync.config.sync_settings import SyncSettings, get_sync_settings

__all__ = ["SyncSettings", "get_sync_settings"]

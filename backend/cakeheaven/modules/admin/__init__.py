"""
Admin Module - Store settings and analytics.
"""

from cakeheaven.modules.admin.analytics import AnalyticsService
from cakeheaven.modules.admin.settings import SettingsService

__all__ = [
    "AnalyticsService",
    "SettingsService",
]

"""
Service Organization
====================

**application/**
  Services managed by ServiceContainer, one instance per application:
  AlertService, AnalyticsService

**ai/**
  Optional LLM backends and the insight generator that enriches analytics.
"""

from .application.alert_service import AlertService
from .application.analytics_service import AnalyticsService

__all__ = ["AlertService", "AnalyticsService"]

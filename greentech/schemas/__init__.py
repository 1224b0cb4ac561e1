"""
Schemas Module
==============

Pydantic models for request/response validation.
"""

from greentech.schemas.insights import AIInsight, CommandRequest

__all__ = ["AIInsight", "CommandRequest"]

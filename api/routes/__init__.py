#!/usr/bin/env python3
"""
API routes package
"""

from .ai import router as ai_router

__all__ = [
    "ai_router",
]

#!/usr/bin/env python3
"""
OhMyCook - AI backend server

Exposes POST /api/ai for the client core.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import ai_router
from config.logging import get_log_level, setup_logging
from config.loggers import GenericLogger

setup_logging(get_log_level())
logger = GenericLogger("api", "main")

app = FastAPI(title="OhMyCook AI Backend", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(ai_router, prefix="/api", tags=["ai"])

logger.info("🚀 [MAIN] OhMyCook AI backend ready")

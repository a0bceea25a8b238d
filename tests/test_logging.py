#!/usr/bin/env python3
"""
ログ設定（config.logging / config.loggers）の単体テスト

実行: pytest tests/test_logging.py
"""

import logging
import os
import sys

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.loggers import GenericLogger
from config.logging import get_log_level, setup_logging


def test_log_level_follows_environment(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ENVIRONMENT", "production")
    assert get_log_level() == "INFO"

    monkeypatch.setenv("ENVIRONMENT", "development")
    assert get_log_level() == "DEBUG"

    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert get_log_level() == "WARNING"


def test_generic_logger_is_namespaced():
    logger = GenericLogger("service", "sync_engine")

    assert logger.logger.name == "ohmycook.service.sync_engine"


def test_setup_logging_writes_to_log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_FILE", "client.log")

    root = setup_logging("INFO")
    try:
        GenericLogger("core", "executor").info("🚀 [EXECUTOR] started")
        for handler in root.handlers:
            handler.flush()

        assert root.propagate is False
        assert "started" in (tmp_path / "client.log").read_text(encoding="utf-8")
        assert (tmp_path / "client_error.log").exists()
    finally:
        for handler in list(root.handlers):
            handler.close()
        root.handlers.clear()
        root.propagate = True
        root.setLevel(logging.NOTSET)


def test_setup_logging_routes_errors_to_error_file(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_FILE", "client.log")

    root = setup_logging("DEBUG")
    try:
        logger = GenericLogger("service", "sync_engine")
        logger.info("🔐 [SYNC] session started")
        logger.error("❌ [SYNC] push failed")
        for handler in root.handlers:
            handler.flush()

        main_log = (tmp_path / "logs" / "client.log").read_text(encoding="utf-8")
        error_log = (tmp_path / "logs" / "client_error.log").read_text(encoding="utf-8")
        assert "session started" in main_log and "push failed" in main_log
        assert "push failed" in error_log
        assert "session started" not in error_log
        # logger名は30桁に揃えられる
        assert " - ohmycook.service.sync_engine  - INFO  - " in main_log
    finally:
        for handler in list(root.handlers):
            handler.close()
        root.handlers.clear()
        root.propagate = True
        root.setLevel(logging.NOTSET)

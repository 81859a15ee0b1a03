"""
Tests for Shared Module.
========================

Settings loading and logging configuration.
"""

import logging


class TestSettings:
    """Tests for Settings."""

    def test_yaml_file_values(self, tmp_path, monkeypatch):
        """Test that a YAML file supplies values the environment leaves unset."""
        from ziyuanbao.shared.config import load_settings

        monkeypatch.delenv("PIPELINE__ITEM_DELAY", raising=False)
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("pipeline:\n  item_delay: 2.5\n  category_delay: 7\n", encoding="utf-8")

        settings = load_settings(config_file)

        assert settings.pipeline.item_delay == 2.5
        assert settings.pipeline.category_delay == 7

    def test_nested_env_overrides_yaml(self, monkeypatch):
        """Test that SECTION__FIELD beats the shipped settings.yaml for that field only."""
        from ziyuanbao.shared.config import DEFAULT_CONFIG_FILE, load_settings

        monkeypatch.setenv("PIPELINE__ITEM_DELAY", "0.25")

        settings = load_settings(DEFAULT_CONFIG_FILE)

        assert settings.pipeline.item_delay == 0.25
        assert settings.pipeline.category_delay == 3.0
        assert settings.scraping.base_url == "https://www.feifeiziyuan.com"

    def test_missing_yaml_file_uses_defaults(self, tmp_path, monkeypatch):
        from ziyuanbao.shared.config import load_settings

        monkeypatch.delenv("PIPELINE__ITEM_DELAY", raising=False)

        assert load_settings(tmp_path / "absent.yaml").pipeline.item_delay == 1.0

    def test_log_level_override(self):
        from ziyuanbao.shared.config import Settings

        assert Settings(GEMINI_API_KEY="x", LOG_LEVEL="debug").get_effective_log_level() == "DEBUG"


class TestLogging:
    """Tests for logging helpers."""

    def test_job_logger_prefixes_messages(self, caplog):
        """Test that job log lines carry the job id."""
        from ziyuanbao.shared.logging import get_job_logger

        with caplog.at_level(logging.INFO):
            get_job_logger("ziyuanbao.test", 7).info("started")

        assert "[job 7] started" in caplog.text

    def test_configure_logging_writes_file(self, settings, tmp_path):
        """Test that the configured log file receives records."""
        from ziyuanbao.shared.logging import configure_logging, get_logger

        log_file = tmp_path / "logs" / "pipeline.log"
        settings.logging.file = str(log_file)
        settings.logging.rich_console = False

        configure_logging(settings)
        get_logger("ziyuanbao.test").warning("disk full")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "disk full" in log_file.read_text(encoding="utf-8")

    def test_noisy_loggers_quieted(self):
        from ziyuanbao.shared.logging import setup_logging

        setup_logging(level="DEBUG", use_rich=False, force=True)

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

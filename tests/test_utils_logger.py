"""Tests for the gpusight logger hierarchy."""

from io import StringIO

import pytest

from gpusight.utils.logger import Logger, LoggerNotConfiguredError, LogLevel


def test_get_before_configure_raises() -> None:
    """Loggers are unavailable until configure() runs."""
    Logger.reset()

    with pytest.raises(LoggerNotConfiguredError):
        Logger.get("assembler")
    with pytest.raises(LoggerNotConfiguredError):
        Logger.set_level("INFO")


def test_configure_writes_to_stream() -> None:
    """Records go to the configured stream in the short format."""
    output = StringIO()
    Logger.configure(level="DEBUG", output=output, timestamps=False)

    assert Logger.is_configured()
    Logger.get("assembler").debug("disk degraded")

    assert output.getvalue() == "DEBUG [gpusight.assembler] disk degraded\n"


def test_reconfigure_replaces_handler() -> None:
    """Configuring twice keeps only the newest handler."""
    first, second = StringIO(), StringIO()
    Logger.configure(level="INFO", output=first, timestamps=False)
    Logger.configure(level="INFO", output=second, timestamps=False)

    Logger.get("collector").info("cycle done")

    assert first.getvalue() == ""
    assert "cycle done" in second.getvalue()


def test_set_level() -> None:
    """set_level changes what gets through."""
    output = StringIO()
    Logger.configure(level="WARNING", output=output, timestamps=False)

    log = Logger.get("collector")
    log.info("Hidden")
    assert "Hidden" not in output.getvalue()

    Logger.set_level(LogLevel.INFO)
    log.info("Visible")
    assert "Visible" in output.getvalue()


@pytest.mark.parametrize("name", ["debug", " Warning ", "ERROR"])
def test_level_names_are_case_insensitive(name) -> None:
    """Level names parse regardless of case and padding."""
    assert LogLevel.parse(name).value == name.strip().upper()


def test_unknown_level_lists_valid_names() -> None:
    """An unknown level names the accepted ones."""
    with pytest.raises(ValueError, match="expected one of DEBUG, INFO"):
        Logger.configure(level="LOUD", output=StringIO())


def test_invalid_output_rejected() -> None:
    """Output must be a path, a stream or None."""
    with pytest.raises(ValueError, match="Invalid log output"):
        Logger.configure(output=42)


def test_location_format() -> None:
    """include_location adds file and line."""
    output = StringIO()
    Logger.configure(
        level="INFO", output=output, timestamps=False, include_location=True
    )

    Logger.get().info("root message")

    content = output.getvalue()
    assert "[gpusight]" in content
    assert "test_utils_logger.py:" in content


def test_for_source_prefixes_messages() -> None:
    """Source loggers tag every message with the source."""
    output = StringIO()
    Logger.configure(level="INFO", output=output, timestamps=False)

    Logger.for_source("adapters.command", "host/free-b").warning(
        "section nproc failed"
    )

    assert output.getvalue() == (
        "WARNING [gpusight.adapters.command] [host/free-b] section nproc failed\n"
    )


def test_configure_from_env(monkeypatch) -> None:
    """GPUSIGHT_LOG_LEVEL sets the level."""
    monkeypatch.setenv("GPUSIGHT_LOG_LEVEL", "error")
    output = StringIO()
    Logger.configure_from_env(output=output, timestamps=False)

    log = Logger.get("assembler")
    log.warning("dropped")
    log.error("kept")

    assert "dropped" not in output.getvalue()
    assert "kept" in output.getvalue()


def test_configure_from_env_default(monkeypatch) -> None:
    """Without GPUSIGHT_LOG_LEVEL the default applies."""
    monkeypatch.delenv("GPUSIGHT_LOG_LEVEL", raising=False)
    output = StringIO()
    Logger.configure_from_env(default="INFO", output=output, timestamps=False)

    Logger.get("collector").info("visible")

    assert "visible" in output.getvalue()

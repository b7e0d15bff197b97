"""Tests for logging setup and helpers."""

from __future__ import annotations

import pytest

from mmccopy import logging as logging_module


@pytest.fixture
def records():
    """Capture every log record in memory."""
    logging_module.logger.remove()
    captured: list[dict] = []

    def sink(message):
        captured.append(message.record)

    logging_module.logger.add(sink, level="TRACE", enqueue=False)
    return captured


def log_files(log_dir):
    """Names of files in log_dir; closed sinks may have been compressed."""
    return {path.name.split(".")[0] for path in log_dir.iterdir()}


def test_setup_logging_writes_files_only_with_log_dir(tmp_path):
    """Test file sinks are created under log_dir and nowhere else."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(log_dir=log_dir)

    log = logging_module.get_logger(source="test", tags=["unit"])
    log.info("Info message")
    logging_module.logger.remove()

    assert log_files(log_dir) == {"operations", "structured"}


def test_setup_logging_debug_file(tmp_path):
    """Test debug.log is added when debug is enabled."""
    log_dir = tmp_path / "logs"
    logging_module.setup_logging(debug=True, log_dir=log_dir)

    logging_module.get_logger(source="test").debug("Debug message")
    logging_module.logger.remove()

    assert "debug" in log_files(log_dir)


def test_setup_logging_without_log_dir(tmp_path, monkeypatch):
    """Test no files are written when no log directory is configured."""
    monkeypatch.chdir(tmp_path)

    logging_module.setup_logging()
    logging_module.get_logger(source="test").warning("Warning message")
    logging_module.logger.remove()

    assert list(tmp_path.iterdir()) == []


def test_console_is_quiet_by_default(capsys):
    """Test INFO stays off stderr unless debugging."""
    logging_module.setup_logging()

    log = logging_module.get_logger(source="test")
    log.info("Info message")
    log.warning("Warning message")
    logging_module.logger.remove()

    err = capsys.readouterr().err
    assert "Info message" not in err
    assert "Warning message" in err


def test_get_logger_preserves_context_metadata(records):
    """Test bound logger keeps job_id, tags, and source metadata."""
    log = logging_module.get_logger(job_id="write-123", tags=["transfer"], source="transfer")
    log.info("Context test")

    record = records[0]
    assert record["extra"]["job_id"] == "write-123"
    assert record["extra"]["tags"] == ["transfer"]
    assert record["extra"]["source"] == "transfer"


def test_combined_filter_blocks_progress_logs_above_trace():
    """Test combined filter suppresses per-chunk progress above TRACE level."""
    record = {
        "message": "Copied chunk",
        "extra": {"tags": ["transfer", "progress"]},
        "level": logging_module.logger.level("DEBUG"),
    }

    assert logging_module._combined_filter(record) is False

    record["level"] = logging_module.logger.level("TRACE")
    assert logging_module._combined_filter(record) is True

    record["level"] = logging_module.logger.level("ERROR")
    assert logging_module._combined_filter(record) is True


def test_combined_filter_passes_untagged_records():
    record = {
        "message": "Unmounted filesystem",
        "extra": {"tags": ["mount"]},
        "level": logging_module.logger.level("INFO"),
    }

    assert logging_module._combined_filter(record) is True


class TestOperationContext:
    """Tests for operation_context()."""

    def test_logs_start_and_completion(self, records):
        with logging_module.operation_context("write", device="/dev/sdc") as log:
            log.info("Inside")

        messages = [record["message"] for record in records]
        assert messages == ["Write started", "Inside", "Write completed"]
        job_ids = {record["extra"]["job_id"] for record in records}
        assert len(job_ids) == 1
        assert job_ids.pop().startswith("write-")
        assert records[0]["extra"]["device"] == "/dev/sdc"

    def test_contextualizes_plain_loggers(self, records):
        with logging_module.operation_context("read"):
            logging_module.LoggerFactory.for_mount().info("Nested")

        nested = records[1]
        assert nested["extra"]["job_id"].startswith("read-")
        assert nested["extra"]["source"] == "mount"

    def test_logs_failure_and_reraises(self, records):
        with pytest.raises(RuntimeError):
            with logging_module.operation_context("write"):
                raise RuntimeError("boom")

        failure = records[-1]
        assert failure["message"] == "Write failed"
        assert failure["level"].name == "ERROR"
        assert failure["extra"]["error"] == "boom"
        assert failure["extra"]["error_type"] == "RuntimeError"


class TestThrottledLogger:
    """Tests for ThrottledLogger."""

    def test_suppresses_within_interval(self, records, mocker):
        clock = mocker.patch("mmccopy.logging.time.time", return_value=100.0)
        throttled = logging_module.ThrottledLogger(
            logging_module.get_logger(source="test"), interval_seconds=5.0
        )

        throttled.debug("progress", "first")
        clock.return_value = 102.0
        throttled.debug("progress", "second")
        clock.return_value = 105.0
        throttled.debug("progress", "third")

        assert [record["message"] for record in records] == ["first", "third"]

    def test_keys_are_independent(self, records):
        throttled = logging_module.ThrottledLogger(
            logging_module.get_logger(source="test"), interval_seconds=60.0
        )

        throttled.info("a", "first")
        throttled.info("b", "second")

        assert len(records) == 2


class TestEventLogger:
    """Tests for EventLogger."""

    def test_log_unmount(self, records):
        log = logging_module.LoggerFactory.for_mount()

        logging_module.EventLogger.log_unmount(log, "/dev/sdc", "/media/{boot}")

        record = records[0]
        assert record["message"] == "Unmounted filesystem"
        assert record["extra"]["event_type"] == "unmount"
        assert record["extra"]["mount_point"] == "/media/{boot}"

    def test_log_transfer_started(self, records):
        log = logging_module.get_logger(source="test")

        logging_module.EventLogger.log_transfer_started(log, "image.img", "/dev/sdc", 4096)

        extra = records[0]["extra"]
        assert extra["event_type"] == "transfer_started"
        assert extra["total_bytes"] == 4096

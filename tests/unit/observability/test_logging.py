"""
verus-orchestrator: unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate JSON-lines logging with correlation metadata and structlog routing.

What this test file should cover
- JSON line validity and correlation field propagation.
- structlog events rendered through the queue-backed listener.
- Multi-threaded logging stability.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from verus_orchestrator import observability
from verus_orchestrator.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    parse_log_level,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"verus_orchestrator.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_lines_carry_run_and_unit_correlation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-corr", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(unit="runtime", identity="runtime_core"):
        with correlation_scope(action_key="abc123"):
            logger.info("unit_verified", extra={"duration_ms": 12.5})
        logger.warning("unit_failed")

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-corr" / "verus.jsonl"
    first, second = _read_json_lines(handle.log_path)
    assert first["run_id"] == "run-corr"
    assert first["unit"] == "runtime"
    assert first["identity"] == "runtime_core"
    assert first["action_key"] == "abc123"
    assert first["fields"] == {"duration_ms": 12.5}
    assert first["timestamp"].endswith("Z")
    assert second["level"] == "WARNING"
    assert "action_key" not in second


def test_correlation_scope_restores_previous_context() -> None:
    assert get_correlation_context() == {}
    with correlation_scope(unit="a"):
        with correlation_scope(unit="b", identity="b_crate"):
            assert get_correlation_context() == {"unit": "b", "identity": "b_crate"}
        assert get_correlation_context() == {"unit": "a"}
    assert get_correlation_context() == {}


def test_structlog_events_reach_the_json_log(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-structlog", base_log_dir=tmp_path)
    )

    with correlation_scope(unit="foundation"):
        structlog.get_logger("verus_orchestrator.engine.executor").info(
            "unit_cached", action_key="k-1", dependencies=["a", "b"]
        )
    structlog.get_logger("verus_orchestrator.engine.executor").debug("filtered_out")

    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert [event["message"] for event in events] == ["unit_cached"]
    event = events[0]
    assert event["logger"] == "verus_orchestrator.engine.executor"
    assert event["unit"] == "foundation"
    assert event["action_key"] == "k-1"
    assert event["fields"]["dependencies"] == ["a", "b"]


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-threaded", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    def worker(index: int) -> None:
        with correlation_scope(unit=f"unit-{index}"):
            for attempt in range(25):
                logger.info("tick", extra={"attempt": attempt})

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert len(events) + handle.dropped_records == 150
    assert all(str(event["unit"]).startswith("unit-") for event in events)


def test_shutdown_is_idempotent_and_clears_the_active_handle(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-shutdown", base_log_dir=tmp_path, logger_name=_logger_name())
    )
    assert get_active_logging_handle() is handle

    shutdown_logging(handle)
    shutdown_logging(handle)

    assert handle.is_shutdown
    assert get_active_logging_handle() is None


def test_invalid_settings_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(run_id=" ", base_log_dir=tmp_path))
    with pytest.raises(ValueError):
        setup_structured_logging(
            LoggingConfig(run_id="r", base_log_dir=tmp_path, log_filename="nested/log.jsonl")
        )
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level(logging.ERROR) == logging.ERROR


def test_package_exports_only_the_run_entry_points() -> None:
    assert sorted(observability.__all__) == [
        "LoggingConfig",
        "configure_structlog",
        "correlation_scope",
        "setup_structured_logging",
        "shutdown_logging",
    ]
    assert observability.correlation_scope is correlation_scope

"""
verus-orchestrator: unit tests for config schema

File: tests/unit/config/test_schema.py

Purpose
- Validate strict schema checking with structured issue paths.
"""

from __future__ import annotations

import pytest

from verus_orchestrator.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["meta"]["schema_version"] == ConfigSchemaVersion
    assert result.config["toolchain"]["platform"] == "host"


def test_unknown_keys_are_rejected_at_every_level() -> None:
    config = merge_config(default_config(), {"bogus": {}, "paths": {"workspace": "x"}})

    result = validate_config(config)

    assert not result.is_valid
    paths = {issue.path for issue in result.issues}
    assert {"bogus", "paths.workspace"} <= paths


def test_type_and_range_violations_report_exact_paths() -> None:
    config = merge_config(
        default_config(),
        {
            "execution": {"max_workers": 0, "timeout_seconds": "slow", "keep_going": "yes"},
            "toolchain": {"platform": "riscv64-unknown-linux-gnu", "sha256": "abc"},
            "observability": {"log_level": "TRACE"},
        },
    )

    result = validate_config(config)

    issues = {issue.path: issue.message for issue in result.issues}
    assert issues["execution.max_workers"] == "must be >= 1"
    assert "expected number" in issues["execution.timeout_seconds"]
    assert "expected boolean" in issues["execution.keep_going"]
    assert "invalid value 'riscv64-unknown-linux-gnu'" in issues["toolchain.platform"]
    assert "64-character" in issues["toolchain.sha256"]
    assert "expected one of" in issues["observability.log_level"]


def test_schema_version_mismatch_explains_the_fix() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 9}})

    with pytest.raises(ConfigValidationError) as error:
        assert_valid_config(config)

    assert "upgrade verus-orchestrator" in str(error.value)


def test_sha256_is_normalized_and_empty_means_unpinned() -> None:
    digest = "AB" * 32
    config = assert_valid_config(merge_config(default_config(), {"toolchain": {"sha256": digest}}))
    assert config["toolchain"]["sha256"] == digest.lower()

    config = assert_valid_config(merge_config(default_config(), {"toolchain": {"sha256": ""}}))
    assert config["toolchain"]["sha256"] == ""


def test_merge_replaces_lists_and_keeps_the_base_intact() -> None:
    base = default_config()
    merged = merge_config(base, {"environment": {"extra_bin_dirs": []}})

    assert merged["environment"]["extra_bin_dirs"] == []
    assert base["environment"]["extra_bin_dirs"] == ["/usr/local/bin"]
    assert merged["environment"]["manager_bin_dirs"] == [".cargo/bin", ".rustup/shims"]

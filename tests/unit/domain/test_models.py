"""Unit tests for domain.models."""

from __future__ import annotations

from pathlib import Path

import pytest

from verus_orchestrator.domain.models import (
    TaskOutcome,
    TaskStatus,
    UnitDeclaration,
    VerificationUnit,
)
from verus_orchestrator.errors import ConfigurationError


def test_declaration_rejects_blank_names_and_repeated_dependencies() -> None:
    with pytest.raises(ValueError, match="non-empty"):
        UnitDeclaration(name="  ", sources=(Path("lib.rs"),))
    with pytest.raises(ValueError, match="more than once"):
        UnitDeclaration(name="a", sources=(Path("lib.rs"),), dependencies=("b", "b"))


def test_unit_requires_sources() -> None:
    with pytest.raises(ConfigurationError, match="has no sources"):
        VerificationUnit(
            name="empty",
            identity="empty",
            entry_source=Path("lib.rs"),
            sources=(),
            success_marker=Path("out/empty.success"),
        )


def test_declared_sources_include_an_external_entry() -> None:
    unit = VerificationUnit(
        name="u",
        identity="u",
        entry_source=Path("gen/root.rs"),
        sources=(Path("src/a.rs"),),
        success_marker=Path("out/u.success"),
    )

    assert unit.declared_sources == (Path("src/a.rs"), Path("gen/root.rs"))
    assert unit.transitive_markers == (Path("out/u.success"),)
    assert unit.describe()["entry_source"] == str(Path("gen/root.rs"))


def test_status_success_classification() -> None:
    assert TaskStatus.VERIFIED.succeeded
    assert TaskStatus.CACHED.succeeded
    for status in (TaskStatus.FAILED, TaskStatus.BLOCKED, TaskStatus.CANCELLED):
        assert not status.succeeded


def test_outcome_to_dict() -> None:
    outcome = TaskOutcome(
        unit="u",
        status=TaskStatus.VERIFIED,
        exit_code=0,
        marker=Path("out/u.success"),
        duration_ms=12.34567,
    )

    assert outcome.to_dict() == {
        "unit": "u",
        "status": "verified",
        "exit_code": 0,
        "marker": str(Path("out/u.success")),
        "diagnostic": "",
        "duration_ms": 12.346,
        "action_key": "",
    }

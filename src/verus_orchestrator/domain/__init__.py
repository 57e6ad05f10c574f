"""Domain models for verification units and task outcomes."""

from verus_orchestrator.domain.models import (
    TaskOutcome,
    TaskStatus,
    UnitDeclaration,
    UnitKind,
    VerificationUnit,
)

__all__ = [
    "TaskOutcome",
    "TaskStatus",
    "UnitDeclaration",
    "UnitKind",
    "VerificationUnit",
]

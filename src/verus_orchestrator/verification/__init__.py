"""Verifier invocation as a build action and as a test."""

from verus_orchestrator.verification.task import (
    VerificationAction,
    build_verifier_command,
    declared_inputs,
    plan_action,
    run_verification_task,
)
from verus_orchestrator.verification.test_wrapper import run_verification_test

__all__ = [
    "VerificationAction",
    "build_verifier_command",
    "declared_inputs",
    "plan_action",
    "run_verification_task",
    "run_verification_test",
]

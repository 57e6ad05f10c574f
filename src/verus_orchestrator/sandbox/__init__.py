"""Process execution and verifier environment synthesis."""

from verus_orchestrator.sandbox.environment import (
    EnvironmentSettings,
    EnvironmentSynthesizer,
    HostInspector,
    LocalHostInspector,
    SynthesizedEnvironment,
)
from verus_orchestrator.sandbox.runner import (
    CommandExecutionResult,
    CommandRunner,
    CommandTimeoutError,
    SubprocessCommandRunner,
)

__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "CommandTimeoutError",
    "EnvironmentSettings",
    "EnvironmentSynthesizer",
    "HostInspector",
    "LocalHostInspector",
    "SubprocessCommandRunner",
    "SynthesizedEnvironment",
]

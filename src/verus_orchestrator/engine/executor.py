"""
verus-orchestrator: local build engine

File: src/verus_orchestrator/engine/executor.py

Purpose
- Schedule verification tasks over a resolved unit graph on this host.
- Reuse markers whose action key is unchanged; re-run everything else.

Functional requirements
- A unit starts only after every direct dependency verified or was cached.
- Failure blocks the transitive dependents and nothing else.
- With ``keep_going`` disabled, no new unit starts after the first failure.
- The execution environment is synthesized at most once per run, on the
  first cache miss.
- Test units run one at a time after their library dependencies are built.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, replace
from functools import partial
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from verus_orchestrator.domain.models import TaskOutcome, TaskStatus, UnitKind
from verus_orchestrator.engine.action_cache import ActionCache, compute_action_key
from verus_orchestrator.errors import DependencyNotReadyError, ManifestError, ToolchainResolutionError
from verus_orchestrator.observability.logging import correlation_scope
from verus_orchestrator.sandbox.environment import EnvironmentSynthesizer, SynthesizedEnvironment
from verus_orchestrator.utils.concurrency import BoundedSemaphore, CancellationToken, run_blocking
from verus_orchestrator.verification.task import run_verification_task
from verus_orchestrator.verification.test_wrapper import run_verification_test

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from verus_orchestrator.planning.resolver import BuildGraph
    from verus_orchestrator.sandbox.runner import CommandRunner
    from verus_orchestrator.toolchain.bundle import ToolchainBundle


@dataclass(frozen=True, slots=True)
class BuildReport:
    """Per-unit outcomes of one run, in scheduling order."""

    outcomes: tuple[TaskOutcome, ...] = ()
    tests: tuple[TaskOutcome, ...] = ()

    @property
    def succeeded(self) -> bool:
        return all(outcome.succeeded for outcome in (*self.outcomes, *self.tests))

    def outcome(self, unit: str) -> TaskOutcome:
        for candidate in (*self.outcomes, *self.tests):
            if candidate.unit == unit:
                return candidate
        raise KeyError(unit)

    def with_status(self, status: TaskStatus) -> tuple[str, ...]:
        return tuple(
            outcome.unit for outcome in (*self.outcomes, *self.tests) if outcome.status is status
        )

    def counts(self) -> dict[str, int]:
        totals = {status.value: 0 for status in TaskStatus}
        for outcome in (*self.outcomes, *self.tests):
            totals[outcome.status.value] += 1
        return totals

    def to_dict(self) -> dict[str, object]:
        return {
            "succeeded": self.succeeded,
            "counts": self.counts(),
            "units": [outcome.to_dict() for outcome in self.outcomes],
            "tests": [outcome.to_dict() for outcome in self.tests],
        }


class LocalBuildEngine:
    """Drive verification of a ``BuildGraph`` with bounded parallelism."""

    def __init__(
        self,
        graph: BuildGraph,
        bundle: ToolchainBundle,
        *,
        synthesizer: EnvironmentSynthesizer | None = None,
        command_runner: CommandRunner | None = None,
        cache: ActionCache | None = None,
        max_workers: int = 1,
        timeout_seconds: float | None = None,
        keep_going: bool = True,
        test_stream: TextIO | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._graph = graph
        self._bundle = bundle
        self._synthesizer = synthesizer or EnvironmentSynthesizer()
        self._command_runner = command_runner
        self._cache = cache
        self._max_workers = max_workers
        self._timeout_seconds = timeout_seconds
        self._keep_going = keep_going
        self._test_stream = test_stream
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._environment: SynthesizedEnvironment | None = None
        self._environment_error: ToolchainResolutionError | None = None
        self._environment_lock: asyncio.Lock | None = None

    @property
    def environment(self) -> SynthesizedEnvironment | None:
        """Environment of the most recent run, if one was needed."""
        return self._environment

    def build(self, units: Iterable[str] | None = None) -> BuildReport:
        """Verify ``units`` (default: every library unit) and their dependencies."""
        roots = self._select(units, UnitKind.LIBRARY)
        self._reset_environment()
        outcomes = asyncio.run(self._execute(self._graph.plan(roots)))
        return BuildReport(outcomes=outcomes)

    def test(self, units: Iterable[str] | None = None) -> BuildReport:
        """Build the dependencies of ``units`` (default: every test unit), then run each test."""
        roots = self._select(units, UnitKind.TEST)
        self._reset_environment()
        root_set = set(roots)
        dependency_plan = tuple(name for name in self._graph.plan(roots) if name not in root_set)
        outcomes = asyncio.run(self._execute(dependency_plan)) if dependency_plan else ()
        by_name = {outcome.unit: outcome for outcome in outcomes}

        tests: list[TaskOutcome] = []
        for name in roots:
            upstream = self._graph.graph.transitive_dependencies(name)
            failed = [dep for dep in upstream if dep in by_name and not by_name[dep].succeeded]
            if failed:
                tests.append(self._blocked(name, failed))
                continue
            tests.append(self._run_test(name))
        return BuildReport(outcomes=outcomes, tests=tuple(tests))

    def _select(self, units: Iterable[str] | None, kind: UnitKind) -> tuple[str, ...]:
        if units is None:
            return self._graph.names_of_kind(kind)
        selected = tuple(dict.fromkeys(units))
        if not selected:
            return self._graph.names_of_kind(kind)
        for name in selected:
            unit = self._graph.unit(name)
            if unit.kind is not kind:
                command = "test" if unit.kind is UnitKind.TEST else "build"
                raise ManifestError(
                    f"unit {name!r} is a {unit.kind.value} unit; run it with `verus-orch {command}`"
                )
        return selected

    async def _execute(self, plan: Sequence[str]) -> tuple[TaskOutcome, ...]:
        semaphore = BoundedSemaphore(self._max_workers)
        token = CancellationToken()
        self._environment_lock = asyncio.Lock()
        action_keys: dict[str, str] = {}
        tasks: dict[str, asyncio.Task[TaskOutcome]] = {}
        for name in plan:
            tasks[name] = asyncio.create_task(
                self._run_unit(name, tasks, action_keys, semaphore, token),
                name=f"verify:{name}",
            )
        await asyncio.gather(*tasks.values())
        return tuple(tasks[name].result() for name in plan)

    async def _run_unit(
        self,
        name: str,
        tasks: dict[str, asyncio.Task[TaskOutcome]],
        action_keys: dict[str, str],
        semaphore: BoundedSemaphore,
        token: CancellationToken,
    ) -> TaskOutcome:
        unit = self._graph.unit(name)
        upstream = [await tasks[dependency] for dependency in unit.dependency_names]
        failed = [outcome.unit for outcome in upstream if not outcome.succeeded]
        if failed:
            return self._blocked(name, failed)
        if token.is_cancelled:
            return self._cancelled(name)

        with correlation_scope(unit=name, identity=unit.identity):
            key = await asyncio.to_thread(compute_action_key, unit, self._bundle, action_keys)
            with correlation_scope(action_key=key):
                if self._cache is not None and self._cache.is_fresh(unit, key):
                    action_keys[name] = key
                    self._logger.info("unit_cached", unit=name, action_key=key)
                    return TaskOutcome(
                        unit=name,
                        status=TaskStatus.CACHED,
                        marker=unit.success_marker,
                        action_key=key,
                    )

                try:
                    environment = await self._environment_async()
                    outcome = await run_blocking(
                        semaphore,
                        partial(
                            run_verification_task,
                            unit,
                            self._bundle,
                            environment,
                            command_runner=self._command_runner,
                            timeout_seconds=self._timeout_seconds,
                        ),
                        token,
                    )
                except asyncio.CancelledError:
                    if not token.is_cancelled:
                        raise
                    return self._cancelled(name)
                except (ToolchainResolutionError, DependencyNotReadyError) as exc:
                    outcome = TaskOutcome(unit=name, status=TaskStatus.FAILED, diagnostic=str(exc))

                outcome = replace(outcome, action_key=key)
                if outcome.status is TaskStatus.VERIFIED:
                    action_keys[name] = key
                    if self._cache is not None:
                        self._cache.store(unit, key)
                    self._logger.info(
                        "unit_verified",
                        unit=name,
                        action_key=key,
                        duration_ms=round(outcome.duration_ms, 3),
                    )
                    return outcome

                if self._cache is not None:
                    self._cache.invalidate(name)
                if not self._keep_going:
                    token.cancel()
                self._logger.warning(
                    "unit_failed",
                    unit=name,
                    action_key=key,
                    exit_code=outcome.exit_code,
                    diagnostic=outcome.diagnostic,
                )
                return outcome

    def _run_test(self, name: str) -> TaskOutcome:
        unit = self._graph.unit(name)
        stream = self._test_stream if self._test_stream is not None else sys.stdout
        with correlation_scope(unit=name, identity=unit.identity):
            exit_code = run_verification_test(
                unit,
                self._bundle,
                self._resolve_environment,
                command_runner=self._command_runner,
                timeout_seconds=self._timeout_seconds,
                stream=stream,
            )
            passed = exit_code == 0
            self._logger.info(
                "test_passed" if passed else "test_failed",
                unit=name,
                exit_code=exit_code,
            )
        return TaskOutcome(
            unit=name,
            status=TaskStatus.VERIFIED if passed else TaskStatus.FAILED,
            exit_code=exit_code,
            diagnostic="" if passed else f"verification test {name} exited with code {exit_code}",
        )

    def _blocked(self, name: str, failed: Sequence[str]) -> TaskOutcome:
        self._logger.warning("unit_blocked", unit=name, failed_dependencies=list(failed))
        return TaskOutcome(
            unit=name,
            status=TaskStatus.BLOCKED,
            diagnostic=f"not scheduled: dependency failed ({', '.join(failed)})",
        )

    def _cancelled(self, name: str) -> TaskOutcome:
        self._logger.info("unit_cancelled", unit=name)
        return TaskOutcome(
            unit=name,
            status=TaskStatus.CANCELLED,
            diagnostic="not scheduled: build stopped after an earlier failure",
        )

    async def _environment_async(self) -> SynthesizedEnvironment:
        if self._environment_lock is None:
            self._environment_lock = asyncio.Lock()
        async with self._environment_lock:
            return await asyncio.to_thread(self._resolve_environment)

    def _resolve_environment(self) -> SynthesizedEnvironment:
        if self._environment is None:
            if self._environment_error is not None:
                raise self._environment_error
            try:
                self._environment = self._synthesizer.synthesize(self._bundle)
            except ToolchainResolutionError as exc:
                self._environment_error = exc
                raise
        return self._environment

    def _reset_environment(self) -> None:
        self._environment = None
        self._environment_error = None
        self._environment_lock = None


__all__ = ["BuildReport", "LocalBuildEngine"]

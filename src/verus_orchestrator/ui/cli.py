"""Command-line interface router for verus-orchestrator."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from verus_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    RuntimeSettings,
    load_config,
    runtime_settings,
)
from verus_orchestrator.domain.models import UnitKind
from verus_orchestrator.engine import ActionCache, BuildReport, LocalBuildEngine
from verus_orchestrator.errors import (
    AcquisitionError,
    ConfigurationError,
    ToolchainResolutionError,
)
from verus_orchestrator.observability.logging import (
    LoggingConfig,
    configure_structlog,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from verus_orchestrator.planning import BuildGraph, load_build_graph
from verus_orchestrator.sandbox import EnvironmentSettings, EnvironmentSynthesizer
from verus_orchestrator.toolchain import ToolchainAcquirer, ToolchainBundle, resolve_release
from verus_orchestrator.ui.render import CLIRenderer, create_renderer
from verus_orchestrator.verification import plan_action

if TYPE_CHECKING:
    from verus_orchestrator.domain.models import TaskOutcome


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="verus-orch",
        description=(
            "verus-orchestrator: verify interdependent crates with a pinned verifier.\n\n"
            "Common workflows:\n"
            "  verus-orch fetch            Download the configured verifier release\n"
            "  verus-orch build            Verify every library unit\n"
            "  verus-orch test             Run every verification test unit\n"
            "  verus-orch env              Check the verifier's execution environment\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to verus.toml (default: ./verus.toml if present).",
    )
    common.add_argument(
        "--manifest",
        default=None,
        help="Unit manifest to load (overrides [paths].manifest).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    json_flag = argparse.ArgumentParser(add_help=False)
    json_flag.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit machine-readable JSON on stdout.",
    )

    execution = argparse.ArgumentParser(add_help=False)
    execution.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=None,
        help="Maximum concurrent verifications (overrides [execution].max_workers).",
    )
    execution.add_argument(
        "--keep-going",
        dest="keep_going",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Continue with unrelated units after a failure.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser_ = subparsers.add_parser(
        "build",
        parents=[common, json_flag, execution],
        help="Verify library units and their dependencies",
    )
    build_parser_.add_argument("units", nargs="*", help="Units to verify (default: all libraries).")
    build_parser_.set_defaults(handler=_cmd_build)

    test_parser = subparsers.add_parser(
        "test",
        parents=[common, execution],
        help="Run verification test units",
    )
    test_parser.add_argument("units", nargs="*", help="Test units to run (default: all tests).")
    test_parser.set_defaults(handler=_cmd_test)

    graph_parser = subparsers.add_parser(
        "graph",
        parents=[common, json_flag],
        help="Show resolved identities, entries, bindings, and markers",
    )
    graph_parser.set_defaults(handler=_cmd_graph)

    env_parser = subparsers.add_parser(
        "env",
        parents=[common, json_flag],
        help="Check the toolchain bundle and synthesize the verifier environment",
    )
    env_parser.set_defaults(handler=_cmd_env)

    fetch_parser = subparsers.add_parser(
        "fetch",
        parents=[common, json_flag],
        help="Download and extract the configured verifier release",
    )
    fetch_parser.set_defaults(handler=_cmd_fetch)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common, json_flag],
        help="Show the effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    configure_structlog()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_build(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    graph = _load_graph(settings)
    bundle = _load_bundle(settings)
    engine = _engine(settings, graph, bundle)

    with _run_logging(settings):
        try:
            report = engine.build(_unit_args(args))
        except ConfigurationError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    if _flag(args, "json"):
        _emit_json({"command": "build", **report.to_dict()})
        return 0 if report.succeeded else 1

    renderer = _get_renderer(args)
    renderer.heading("verus-orch build")
    _render_outcomes(renderer, report.outcomes)
    _render_summary(renderer, report)
    return 0 if report.succeeded else 1


def _cmd_test(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    graph = _load_graph(settings)
    bundle = _load_bundle(settings)
    engine = _engine(settings, graph, bundle)

    with _run_logging(settings):
        try:
            report = engine.test(_unit_args(args))
        except ConfigurationError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    renderer = _get_renderer(args)
    if report.outcomes:
        _render_outcomes(renderer, report.outcomes, title="Dependencies:")
    _render_outcomes(renderer, report.tests, title="Tests:")
    _render_summary(renderer, report)
    return 0 if report.succeeded else 1


def _cmd_graph(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    graph = _load_graph(settings)

    if _flag(args, "json"):
        payload: dict[str, object] = {
            "command": "graph",
            "manifest": str(settings.manifest),
            **graph.describe(),
        }
        # Actions need the bundle's artifacts; an unfetched toolchain reports null.
        try:
            bundle = _load_bundle(settings)
        except CLIError:
            payload["actions"] = None
        else:
            payload["actions"] = [
                plan_action(graph.unit(name), bundle).describe()
                for name in graph.names_of_kind(UnitKind.LIBRARY)
            ]
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.heading("verus-orch graph")
    renderer.kv("Manifest", settings.manifest)
    rows = [
        [
            unit.name,
            unit.identity,
            unit.kind.value,
            str(unit.entry_source),
            ", ".join(unit.dependency_names) or "-",
        ]
        for unit in (graph.units[name] for name in graph.order)
    ]
    renderer.table(["unit", "identity", "kind", "entry", "deps"], rows, title="Units:")
    if _flag(args, "verbose"):
        for name in graph.order:
            unit = graph.units[name]
            renderer.section(f"{name}:")
            renderer.kv("  marker", unit.success_marker)
            renderer.kv("  symbol flags", " ".join(unit.symbol_flags) or "-")
            renderer.items([str(path) for path in unit.transitive_markers])
    return 0


def _cmd_env(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    checks: list[tuple[str, bool, str]] = []
    environment_payload: dict[str, object] | None = None

    try:
        bundle = ToolchainBundle.from_directory(
            settings.toolchain_root,
            platform=settings.platform,
            version=settings.toolchain_version,
            rust_toolchain=settings.rust_toolchain,
        )
    except ToolchainResolutionError as exc:
        checks.append(("bundle", False, str(exc)))
        bundle = None

    if bundle is not None:
        checks.append(("bundle", True, str(bundle.root)))
        checks.append(("platform", True, settings.platform.value))
        checks.append(
            ("toolchain pin", bool(bundle.rust_toolchain), bundle.rust_toolchain or "not recorded")
        )
        for name in ("builtin", "builtin_macros", "vstd"):
            path = bundle.library(name)
            checks.append((f"library:{name}", True, str(path) if path else "absent (optional)"))
        try:
            environment = _synthesizer(settings).synthesize(bundle)
        except ToolchainResolutionError as exc:
            checks.append((exc.component, False, str(exc)))
        else:
            checks.append(("sysroot", True, str(environment.sysroot)))
            environment_payload = environment.describe()

    passed = all(ok for _, ok, _ in checks)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "env",
                "checks": [
                    {"name": name, "status": "ok" if ok else "fail", "detail": detail}
                    for name, ok, detail in checks
                ],
                "environment": environment_payload,
            }
        )
        return 0 if passed else 3

    renderer = _get_renderer(args)
    renderer.heading("verus-orch env")
    for name, ok, detail in checks:
        if ok:
            renderer.ok(f"{name}: {detail}")
        else:
            renderer.fail(f"{name}: {detail}")
    if environment_payload is not None:
        renderer.section("Environment:")
        for key in ("home", "library_path_var", "library_path", "path"):
            renderer.kv(f"  {key}", environment_payload[key])
        renderer.kv("  execution requirements", json.dumps(environment_payload["execution_requirements"]))
    renderer.text("\nAll checks passed." if passed else "\nSome checks failed. See details above.")
    return 0 if passed else 3


def _cmd_fetch(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    try:
        release = resolve_release(
            settings.toolchain_version,
            settings.platform,
            sha256=settings.sha256,
        )
        bundle = ToolchainAcquirer(settings.toolchains_dir).acquire(
            release,
            target=settings.toolchain_root,
            rust_toolchain=settings.rust_toolchain,
        )
    except (AcquisitionError, ToolchainResolutionError) as exc:
        raise CLIError(str(exc), exit_code=3) from exc

    payload: dict[str, object] = {
        "command": "fetch",
        "url": release.url,
        "sha256": release.sha256,
        "bundle": bundle.describe(),
    }
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.heading("verus-orch fetch")
    renderer.kv("Release", release.tag)
    renderer.kv("Platform", release.platform.value)
    renderer.kv("Installed at", bundle.root)
    renderer.kv("Rust toolchain", bundle.rust_toolchain or "(not recorded)")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)

    if _flag(args, "json"):
        _emit_json({"command": "config", "config": config})
        return 0

    renderer = _get_renderer(args)
    renderer.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


def _render_outcomes(
    renderer: CLIRenderer,
    outcomes: Sequence[TaskOutcome],
    *,
    title: str = "Units:",
) -> None:
    rows = [
        [
            outcome.unit,
            outcome.status.value,
            "-" if outcome.exit_code is None else str(outcome.exit_code),
            f"{outcome.duration_ms:.0f}ms" if outcome.duration_ms else "-",
        ]
        for outcome in outcomes
    ]
    renderer.table(["unit", "status", "exit", "time"], rows, title=title)
    failures = [outcome for outcome in outcomes if outcome.diagnostic]
    if failures:
        renderer.section("Diagnostics:")
        for outcome in failures:
            renderer.text(f"[{outcome.unit}]")
            for line in outcome.diagnostic.splitlines():
                renderer.text(f"  {line}")


def _render_summary(renderer: CLIRenderer, report: BuildReport) -> None:
    counts = {status: total for status, total in report.counts().items() if total}
    summary = ", ".join(f"{total} {status}" for status, total in sorted(counts.items()))
    renderer.text(f"\n{'OK' if report.succeeded else 'FAILED'}: {summary or 'nothing to do'}")


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "paths.manifest": getattr(args, "manifest", None),
        "execution.max_workers": getattr(args, "jobs", None),
        "execution.keep_going": getattr(args, "keep_going", None),
    }
    try:
        return load_config(getattr(args, "config_path", None), cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_settings(args: argparse.Namespace) -> RuntimeSettings:
    config = _load_effective_config(args)
    try:
        return runtime_settings(config)
    except ConfigurationError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_graph(settings: RuntimeSettings) -> BuildGraph:
    try:
        return load_build_graph(settings.manifest, output_dir=settings.output_dir)
    except ConfigurationError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_bundle(settings: RuntimeSettings) -> ToolchainBundle:
    try:
        return ToolchainBundle.from_directory(
            settings.toolchain_root,
            platform=settings.platform,
            version=settings.toolchain_version,
            rust_toolchain=settings.rust_toolchain,
        )
    except ToolchainResolutionError as exc:
        raise CLIError(str(exc), exit_code=3) from exc


def _synthesizer(settings: RuntimeSettings) -> EnvironmentSynthesizer:
    return EnvironmentSynthesizer(
        settings=EnvironmentSettings(
            manager_bin_dirs=settings.manager_bin_dirs,
            extra_bin_dirs=settings.extra_bin_dirs,
        ),
        platform=settings.platform,
    )


def _engine(
    settings: RuntimeSettings,
    graph: BuildGraph,
    bundle: ToolchainBundle,
) -> LocalBuildEngine:
    return LocalBuildEngine(
        graph,
        bundle,
        synthesizer=_synthesizer(settings),
        cache=ActionCache(settings.cache_dir),
        max_workers=settings.max_workers,
        timeout_seconds=settings.timeout_seconds,
        keep_going=settings.keep_going,
    )


@contextmanager
def _run_logging(settings: RuntimeSettings) -> Iterator[None]:
    run_id = f"{datetime.now(UTC):%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:8]}"
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=settings.log_dir,
            level=settings.log_level,
            log_to_stdout=settings.log_to_stdout,
        )
    )
    try:
        with correlation_scope(run_id=run_id):
            yield
    finally:
        shutdown_logging(handle)


def _unit_args(args: argparse.Namespace) -> tuple[str, ...] | None:
    units = getattr(args, "units", None)
    if not units:
        return None
    return tuple(units)


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]

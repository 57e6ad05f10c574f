"""Command-line interface for verus-orchestrator."""

from verus_orchestrator.ui.cli import CLIError, build_parser, run_cli
from verus_orchestrator.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]

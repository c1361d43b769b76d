"""UI package exports for the CLI and its plain-text renderer."""

from netsource.ui.cli import CLIError, build_parser, main, run_cli
from netsource.ui.render import CLIRenderer, create_renderer, render_pipeline_report

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "main",
    "render_pipeline_report",
    "run_cli",
]

"""
Command line entry point for promptline.

    $ promptline status
    $ promptline validate scene.txt --vars defs.json
    $ promptline run scene.txt --model anthropic/claude-sonnet-4 --vars defs.json --values values.json --mock
    $ promptline groups templates.json

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from . import __version__
from .config.settings import Settings, get_settings
from .observability.logging import get_logger, setup_logging
from .observability.metrics import setup_metrics
from .observability.tracing import TracingManager, setup_tracing
from .pipeline.tags import extract_tag_groups
from .prompts.engine import create_execution_engine
from .prompts.interpolation import VariableInterpolator
from .prompts.models import PromptTemplate, VariableContext, VariableDefinition

logger = get_logger(__name__)


def _load_json(path: str | None, default: Any) -> Any:
    if not path:
        return default
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_defs(path: str | None) -> list[VariableDefinition]:
    return [VariableDefinition.from_dict(d) for d in _load_json(path, [])]


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _status(args: argparse.Namespace) -> int:
    engine = create_execution_engine(get_settings(), mock_mode=True if args.mock else None)
    try:
        _print_json(engine.get_status())
    finally:
        await engine.aclose()
    return 0


def _validate(args: argparse.Namespace) -> int:
    template = Path(args.template).read_text(encoding="utf-8")
    issues = VariableInterpolator().validate_template(template, _load_defs(args.vars))
    _print_json({"valid": not issues, "errors": issues})
    return 1 if issues else 0


async def _run(args: argparse.Namespace) -> int:
    template = Path(args.template).read_text(encoding="utf-8")
    context = VariableContext(variables=_load_json(args.values, {}), variable_defs=_load_defs(args.vars))
    engine = create_execution_engine(get_settings(), mock_mode=True if args.mock else None)
    try:
        result = await engine.execute(template, context, args.model)
    finally:
        await engine.aclose()
    _print_json(result.to_dict())
    return 0 if result.succeeded else 1


def _groups(args: argparse.Namespace) -> int:
    templates = [PromptTemplate.from_dict(t) for t in _load_json(args.templates, [])]
    _print_json(
        [
            {
                "name": group.name,
                "count": group.count,
                "templates": [{"id": t.id, "name": t.name} for t in group.templates],
            }
            for group in extract_tag_groups(templates)
        ]
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="promptline", description="Prompt execution and pipelines")
    parser.add_argument("--version", action="version", version=f"promptline {__version__}")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show engine status")
    status.add_argument("--mock", action="store_true", help="Force mock mode")

    validate = subparsers.add_parser("validate", help="Check a template against its variables")
    validate.add_argument("template", help="Template text file")
    validate.add_argument("--vars", help="JSON file with variable definitions")

    run = subparsers.add_parser("run", help="Execute a template once")
    run.add_argument("template", help="Template text file")
    run.add_argument("--model", required=True, help="Model id")
    run.add_argument("--vars", help="JSON file with variable definitions")
    run.add_argument("--values", help="JSON file with variable values")
    run.add_argument("--mock", action="store_true", help="Force mock mode")

    groups = subparsers.add_parser("groups", help="List tag groups in a template export")
    groups.add_argument("templates", help="JSON file with a list of templates")

    return parser


def setup_observability(settings: Settings) -> TracingManager | None:
    """Install metrics and tracing providers as configured; spans go to stderr."""
    config = settings.observability
    if config.enable_metrics:
        resource = Resource.create(
            {"service.name": config.service_name, "service.version": config.service_version}
        )
        setup_metrics(MeterProvider(resource=resource).get_meter(config.service_name))

    tracing_manager = None
    if config.enable_tracing:
        tracing_manager = setup_tracing(
            config.service_name,
            config.service_version,
            exporter=ConsoleSpanExporter(out=sys.stderr),
        )

    logger.info(
        "promptline initialized",
        environment=settings.environment,
        metrics_enabled=config.enable_metrics,
        tracing_enabled=config.enable_tracing,
    )
    return tracing_manager


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.observability.log_level)
    tracing_manager = setup_observability(settings)

    try:
        if args.command == "status":
            return asyncio.run(_status(args))
        if args.command == "validate":
            return _validate(args)
        if args.command == "run":
            return asyncio.run(_run(args))
        return _groups(args)
    finally:
        if tracing_manager:
            tracing_manager.shutdown()


def cli_main():
    """CLI entry point."""
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        sys.exit(130)
    except (OSError, ValueError) as e:
        logger.error("Command failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli_main()

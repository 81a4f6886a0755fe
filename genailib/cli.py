"""
Command Line Interface
======================

Run, validate and inspect workflows from the shell.

Usage:
    genailib run workflows/story.yaml -i topic="a lighthouse" -o story.mp4
    genailib run workflows/merge.yaml -f intro=clips/intro.mp4 -f outro=clips/outro.mp4
    genailib validate workflows/story.yaml
    genailib providers
    genailib serve --port 8000
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .api.base import Capability
from .api.factory import is_registered, list_providers
from .core.config import Config, configure_logging, set_config
from .core.exceptions import GenAILibError, StepError
from .utils.storage import save_bytes
from .workflow.models import Workflow
from .workflow.runner import WorkflowService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="genailib",
        description="Run generative-media workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run story.yaml -i topic="a lighthouse at dusk" -o story.mp4
  %(prog)s run merge.yaml -f intro=intro.mp4 -f outro=outro.mp4 -o merged.mp4
  %(prog)s validate story.yaml
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a workflow")
    run.add_argument("workflow", help="Workflow file (YAML or JSON)")
    run.add_argument(
        "-i", "--input",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Text input (can be specified multiple times)",
    )
    run.add_argument(
        "-f", "--file",
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Input read from a file as bytes (can be specified multiple times)",
    )
    run.add_argument("-o", "--output", help="Where to write a byte result")

    validate = subparsers.add_parser("validate", help="Validate a workflow file")
    validate.add_argument("workflow", help="Workflow file (YAML or JSON)")

    subparsers.add_parser("providers", help="List registered providers")

    serve = subparsers.add_parser("serve", help="Start the HTTP job API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    return parser


def parse_assignments(values: List[str], read_files: bool = False) -> Dict[str, Any]:
    """
    Parse NAME=VALUE pairs.

    Args:
        values: Raw command line values
        read_files: Treat each value as a path and read its bytes

    Raises:
        ValueError: On a pair without '=' or an empty name
    """
    parsed: Dict[str, Any] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise ValueError(f"expected NAME=VALUE, got {item!r}")
        parsed[name] = Path(value).read_bytes() if read_files else value
    return parsed


async def run_workflow(args: argparse.Namespace, config: Config) -> int:
    """Run a workflow file and report its result."""
    workflow = Workflow.load(args.workflow)
    inputs = parse_assignments(args.input)
    inputs.update(parse_assignments(args.file, read_files=True))

    print("=" * 50)
    print(f"Workflow: {workflow.name or args.workflow} ({len(workflow.steps)} steps)")
    print("=" * 50)

    async with WorkflowService(config) as service:
        run = await service.run(workflow, inputs)

    value = run.final_value
    print("\n" + "-" * 50)
    if isinstance(value, bytes):
        if args.output:
            path = save_bytes(value, args.output)
            print(f"Result saved: {path}")
        else:
            print(f"Result: {len(value)} bytes (use -o to save)")
    elif value is not None:
        print(f"Result: {value}")
    else:
        print("Result: (none)")

    if run.output:
        print(f"Output: {run.output}")
    print(f"Duration: {run.duration:.1f}s")
    print("=" * 50)
    return 0


def validate_workflow(args: argparse.Namespace) -> int:
    workflow = Workflow.load(args.workflow)
    workflow.validate(check_function_types=True)

    unknown = sorted({s.provider for s in workflow.steps if s.provider and not is_registered(s.provider)})
    if unknown:
        print(f"Error: unknown provider(s): {', '.join(unknown)}")
        return 1

    print(f"Workflow '{workflow.name}' is valid ({len(workflow.steps)} steps)")
    return 0


def show_providers() -> int:
    for capability in Capability:
        print(f"{capability.value}:")
        for name in list_providers(capability):
            print(f"  {name}")
    return 0


def serve(args: argparse.Namespace, config: Config) -> int:
    import uvicorn

    from .server import create_app

    uvicorn.run(create_app(WorkflowService(config)), host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = Config.load(args.config)
        set_config(config)
        configure_logging(config, level="DEBUG" if args.verbose else None)

        if args.command == "run":
            return asyncio.run(run_workflow(args, config))
        if args.command == "validate":
            return validate_workflow(args)
        if args.command == "providers":
            return show_providers()
        if args.command == "serve":
            return serve(args, config)

    except KeyboardInterrupt:
        print("\nCancelled")
        return 130
    except StepError as e:
        print(f"\nError in step {e.step_id}: {e.cause}")
        return 1
    except (GenAILibError, OSError, ValueError) as e:
        print(f"\nError: {e}")
        return 1

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())

"""Command line interface: serve the API, validate or run graph files."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import (
    AppConfig,
    get_development_config,
    get_testing_config,
    load_config,
    validate_config,
)
from .core.exceptions import GraphValidationError, WorkflowEngineError
from .core.execution_engine import WorkflowEngine
from .core.logging import get_logger, setup_logging
from .core.registry import HandlerRegistry
from .models.core import ExecutionStatusEnum, WorkflowGraph


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Workflow Execution Engine - validate, schedule and run graphs of typed task nodes"
    )

    parser.add_argument(
        "--env",
        choices=["development", "testing"],
        help="Environment configuration preset"
    )
    parser.add_argument(
        "--config",
        help="Path to a .env configuration file"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-file",
        help="Path to log file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", help="Host to bind the server to")
    serve_parser.add_argument("--port", type=int, help="Port to bind the server to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    validate_parser = subparsers.add_parser("validate", help="Validate a graph JSON file")
    validate_parser.add_argument("graph", help="Path to the graph JSON document")

    run_parser = subparsers.add_parser("run", help="Execute a graph JSON file and print the final snapshot")
    run_parser.add_argument("graph", help="Path to the graph JSON document")
    run_parser.add_argument("--variables", help="Initial run variables as a JSON object")
    run_parser.add_argument("--parallel", action="store_true", help="Run dependency-ready groups concurrently")
    run_parser.add_argument("--max-retries", type=int, help="Retries per node after the first attempt")
    run_parser.add_argument("--retry-delay", type=float, help="Linear retry backoff base in seconds")
    run_parser.add_argument("--timeout", type=float, help="Per-attempt node timeout in seconds")

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration based on command line arguments."""
    if args.env == "development":
        config = get_development_config()
    elif args.env == "testing":
        config = get_testing_config()
    else:
        config = load_config(args.config)

    overrides: Dict[str, Any] = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file

    if args.command == "serve":
        if args.host:
            overrides["host"] = args.host
        if args.port:
            overrides["port"] = args.port
        if args.reload:
            overrides["reload"] = True
    elif args.command == "run":
        if args.max_retries is not None:
            overrides["max_retries"] = args.max_retries
        if args.retry_delay is not None:
            overrides["retry_delay"] = args.retry_delay
        if args.timeout is not None:
            overrides["node_timeout"] = args.timeout
        if args.parallel:
            overrides["parallel_execution"] = True

    if overrides:
        config = AppConfig(**{**config.model_dump(), **overrides})
    return config


def load_graph(path: str) -> WorkflowGraph:
    return WorkflowGraph.model_validate_json(Path(path).read_text(encoding="utf-8"))


def run_server(config: AppConfig) -> int:
    """Run the HTTP API server."""
    import uvicorn

    logger = get_logger(__name__)
    logger.info(f"Starting server on {config.host}:{config.port}")

    if config.reload:
        uvicorn.run("workflow_engine.main:app", **config.get_uvicorn_config())
    else:
        from .main import create_app
        uvicorn.run(create_app(config), **config.get_uvicorn_config())
    return 0


def validate_command(graph: WorkflowGraph) -> int:
    engine = WorkflowEngine(HandlerRegistry.with_builtins())
    result = engine.validate(graph)
    print(result.model_dump_json(indent=2))
    return 0 if result.is_valid else 1


async def run_command(graph: WorkflowGraph, variables: Dict[str, Any], config: AppConfig) -> int:
    engine = WorkflowEngine(HandlerRegistry.with_builtins(), options=config.execution_options())
    try:
        context = await engine.execute(graph, variables)
    except GraphValidationError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return 1
    print(context.snapshot().model_dump_json(indent=2))
    return 0 if context.status == ExecutionStatusEnum.COMPLETED else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        config = load_configuration(args)
        validate_config(config)
        setup_logging(config)

        if args.command == "serve":
            return run_server(config)

        graph = load_graph(args.graph)

        if args.command == "validate":
            return validate_command(graph)

        variables = json.loads(args.variables) if args.variables else {}
        if not isinstance(variables, dict):
            print("Error: --variables must be a JSON object", file=sys.stderr)
            return 1
        return asyncio.run(run_command(graph, variables, config))

    except (OSError, ValueError, ValidationError, WorkflowEngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

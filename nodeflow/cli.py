"""
Command-line interface for nodeflow.

Usage:
    nodeflow run workflow.json --workspace ./project --input topic=owls
    nodeflow validate workflow.json
    nodeflow order workflow.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from nodeflow.config import RuntimeConfig
from nodeflow.errors import GraphValidationError
from nodeflow.graph.context import ExecutionLog, OutputEvent, RunStatus
from nodeflow.graph.executor import WorkflowExecutor, count_by_status
from nodeflow.graph.scheduler import execution_order, find_unscheduled
from nodeflow.host import HostServices
from nodeflow.observability import configure_logging
from nodeflow.storage import load_document


def _parse_inputs(pairs: list[str]) -> dict[str, str]:
    inputs = {}
    for pair in pairs:
        node_id, sep, value = pair.partition("=")
        if not sep or not node_id:
            raise ValueError(f"Invalid --input '{pair}', expected NODE=VALUE")
        inputs[node_id] = value
    return inputs


def _load(path: str):
    try:
        return load_document(path)
    except FileNotFoundError:
        print(f"Workflow not found: {path}", file=sys.stderr)
    except GraphValidationError as e:
        for problem in e.errors:
            print(f"  - {problem}", file=sys.stderr)
    return None


def _print_log(record: ExecutionLog) -> None:
    prefix = f"[{record.node_name}] " if record.node_name else ""
    print(f"{record.level.upper():5} {prefix}{record.message}", file=sys.stderr)


def _print_output(event: OutputEvent) -> None:
    print(event.text)


def _print_stream(node_id: str, chunk: str) -> None:
    sys.stderr.write(chunk)
    sys.stderr.flush()


def cmd_run(args: argparse.Namespace) -> int:
    configure_logging(level=args.log_level, format=args.log_format)
    document = _load(args.workflow)
    if document is None:
        return 1

    try:
        inputs = _parse_inputs(args.input or [])
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    graph = document.to_graph()
    for problem in graph.validate():
        print(f"warning: {problem}", file=sys.stderr)

    config = RuntimeConfig()
    if args.ollama_host:
        config.ollama_host = args.ollama_host
    if args.model:
        config.model = args.model

    executor = WorkflowExecutor(
        graph=graph,
        host=HostServices.local(config),
        workspace_path=str(Path(args.workspace).resolve()),
        on_log=None if args.quiet else _print_log,
        on_stream=None if args.quiet else _print_stream,
        on_output=_print_output,
        workflow_id=document.metadata.id,
    )
    result = asyncio.run(executor.execute(user_inputs=inputs))

    if args.json:
        summary = {
            "runId": result.run_id,
            "status": str(result.status),
            "error": result.error,
            "failedNode": result.failed_node,
            "durationMs": round(result.duration_ms),
            "nodes": {node_id: r.to_dict() for node_id, r in result.results.items()},
        }
        print(json.dumps(summary, indent=2, default=str))
    else:
        counts = count_by_status(result)
        print(
            f"{result.status}: {counts['success']} succeeded, {counts['error']} failed, "
            f"{counts['skipped']} skipped in {result.duration_ms:.0f}ms",
            file=sys.stderr,
        )
        if result.error:
            print(f"error in {result.failed_node}: {result.error}", file=sys.stderr)

    return 0 if result.status == RunStatus.COMPLETED else 1


def cmd_validate(args: argparse.Namespace) -> int:
    document = _load(args.workflow)
    if document is None:
        return 1
    problems = document.to_graph().validate()
    if problems:
        print(f"{args.workflow}: {len(problems)} problems", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        return 1
    print(f"{args.workflow}: OK ({len(document.nodes)} nodes, {len(document.edges)} edges)")
    return 0


def cmd_order(args: argparse.Namespace) -> int:
    document = _load(args.workflow)
    if document is None:
        return 1
    graph = document.to_graph()

    def show(scope: str | None, depth: int) -> None:
        for node_id in execution_order(graph, scope):
            node = graph.get_node(node_id)
            print(f"{'  ' * depth}{node_id} ({node.type})")
            if node.type == "loop":
                show(node_id, depth + 1)

    show(None, 0)
    unscheduled = find_unscheduled(graph)
    if unscheduled:
        print(f"unscheduled (cycle): {', '.join(unscheduled)}", file=sys.stderr)
        return 1
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Execute a workflow")
    run_parser.add_argument("workflow", help="Path to a workflow JSON document")
    run_parser.add_argument("--workspace", default=".", help="Workspace root for file and command nodes")
    run_parser.add_argument(
        "--input",
        "-i",
        action="append",
        metavar="NODE=VALUE",
        help="Value for an Input node (repeatable)",
    )
    run_parser.add_argument("--ollama-host", help="Ollama base URL")
    run_parser.add_argument("--model", help="Default model for chat and agent nodes")
    run_parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    run_parser.add_argument("--quiet", "-q", action="store_true", help="Only print Output node values")
    run_parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    run_parser.add_argument(
        "--log-format", default="auto", choices=["auto", "json", "human"], help="Log output format"
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Check a workflow document")
    validate_parser.add_argument("workflow", help="Path to a workflow JSON document")
    validate_parser.set_defaults(func=cmd_validate)

    order_parser = subparsers.add_parser("order", help="Print the execution order")
    order_parser.add_argument("workflow", help="Path to a workflow JSON document")
    order_parser.set_defaults(func=cmd_order)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="nodeflow",
        description="nodeflow - run node-graph workflows against a local LLM",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()

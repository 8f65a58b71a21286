"""
Command-line runner: resolve a set of queries once and print their states.

Usage:
    python run_queries.py queries.yaml
    python run_queries.py queries.yaml --no-cache --json
    python run_queries.py queries.json --base-url http://localhost:8010/api

The queries file is YAML or JSON: a list of descriptors, or a mapping
with a `queries:` list. Each descriptor has name, request_id (or url),
and optionally mode and min_sufficient_count.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from shared.logging import configure, correlation_context, get_logger

from .config import load_config, build_cache_store, build_client
from .models import QueryDescriptor
from .orchestrator import QueryOrchestrator

log = get_logger("cli", "run_queries")

console = Console()


def load_descriptors(path: Path) -> list[QueryDescriptor]:
    """Read descriptors from a YAML or JSON file."""
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("queries") or []
    if not isinstance(raw, list):
        raise ValueError(f"{path}: expected a list of queries")
    return [QueryDescriptor.from_dict(item) for item in raw]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve page queries through the cache and backend API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_queries.py queries.yaml
    python run_queries.py queries.yaml --no-cache
    python run_queries.py queries.yaml --json > states.json
        """
    )
    parser.add_argument("queries", type=Path, help="YAML or JSON file of query descriptors")
    parser.add_argument("--config", type=Path, default=None,
                        help="Path to config.yaml (default: project root)")
    parser.add_argument("--base-url", default=None, help="Override the backend API base URL")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the local cache")
    parser.add_argument("--json", action="store_true", help="Print final states as JSON")
    return parser


def render_states(states: dict) -> Table:
    table = Table(title="Query states")
    table.add_column("Query", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for name, state in states.items():
        if state["error"]:
            error = state["error"]
            status = f"[red]error {error['status']}[/red]" if error["status"] else "[red]error[/red]"
            detail = error["message"]
        elif state["is_loading"]:
            status = "[yellow]loading[/yellow]"
            detail = ""
        else:
            status = "[green]ok[/green]"
            data = state["data"]
            detail = f"{len(data)} items" if isinstance(data, (list, dict)) else repr(data)
        table.add_row(name, status, detail)
    return table


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.base_url:
        config.base_url = args.base_url
    configure(log_dir=config.logging.dir, console=config.logging.console, file=config.logging.file)

    descriptors = load_descriptors(args.queries)

    with correlation_context() as cid:
        log.info("cli.run.requested", queries=len(descriptors), correlation_id=cid)
        orchestrator = QueryOrchestrator(
            build_client(config),
            build_cache_store(config),
            cache_enabled=config.cache.enabled and not args.no_cache,
        )
        try:
            run = orchestrator.run(descriptors, fingerprint=[str(args.queries)])
            await run.wait()
            states = {name: state.to_dict() for name, state in run.states.items()}
        finally:
            await orchestrator.close()

    if args.json:
        print(json.dumps(states, indent=2, default=str))
    else:
        console.print(render_states(states))

    return 1 if any(state["error"] for state in states.values()) else 0


def entrypoint() -> None:
    load_dotenv()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

#!/usr/bin/env python3
"""
CLI tool for the expand service.

Usage:
    python -m expand_svc.cli serve --port 8060
    python -m expand_svc.cli inspect src/expand_svc/sample_schema.yaml
    python -m expand_svc.cli get /patients/pat_ada --expand person,careTeam.person --token ada-token
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from .config import CONFIG_ENV_VAR, Config
from .expand.engine import MAX_EXPAND_DEPTH
from .expand.parser import max_depth, parse_expand_param
from .schema.loader import load_indexes


def print_json(data: Any, indent: int = 2) -> None:
    """Print JSON."""
    print(json.dumps(data, indent=indent, default=str))


def cmd_serve(args) -> int:
    """Run the demo service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config:
        # The app module reads its config from the environment at import.
        os.environ[CONFIG_ENV_VAR] = args.config
    config = Config.load(args.config)
    uvicorn.run(
        "expand_svc.main:app",
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        reload=config.server.reload,
    )
    return 0


def cmd_inspect(args) -> int:
    """Show what a schema document makes expandable."""
    indexes = load_indexes(args.schema or Config.load().schema.path)

    if args.json:
        print_json({
            "fields": [
                {
                    "schema": schema_name,
                    "field": meta.field_name,
                    "target": meta.target_schema_name,
                    "operation": meta.fetch_operation_id,
                    "batch_operation": meta.batch_operation_id,
                    "cardinality": meta.cardinality.value,
                }
                for schema_name, meta in indexes.schemas
            ],
            "routes": [
                {
                    "operation": route.operation_id,
                    "method": route.method,
                    "path": route.path_template,
                    "response_schema": route.response_schema_name,
                }
                for route in indexes.routes
            ],
        })
        return 0

    print("Expandable fields:")
    for schema_name, meta in indexes.schemas:
        route = indexes.routes.get(meta.fetch_operation_id)
        via = f"{route.method} {route.path_template}" if route else "(no route)"
        suffix = "[]" if meta.is_array else ""
        print(f"  {schema_name}.{meta.field_name}{suffix} -> {meta.target_schema_name}  via {via}")

    print("\nRoutes:")
    for route in indexes.routes:
        schema = route.response_schema_name or "-"
        print(f"  {route.method:6} {route.path_template:32} {route.operation_id:24} {schema}")

    return 0


async def cmd_get(args) -> int:
    """GET a resource from a running service with expansion."""
    import httpx

    params = {}
    if args.expand:
        paths = parse_expand_param(args.expand)
        if max_depth(paths) > MAX_EXPAND_DEPTH:
            print(f"Warning: expand depth {max_depth(paths)} exceeds {MAX_EXPAND_DEPTH}; "
                  "the service will return the unexpanded response", file=sys.stderr)
        params["expand"] = args.expand

    async with httpx.AsyncClient(base_url=args.base_url) as client:
        response = await client.get(args.path, params=params, headers=_get_headers(args))

        if response.status_code != 200:
            print(f"Error: {response.status_code}", file=sys.stderr)
            print(response.text, file=sys.stderr)
            return 1

        print_json(response.json())

    return 0


def _get_headers(args) -> dict:
    """Build request headers."""
    headers = {}
    if args.token:
        headers["Authorization"] = f"Bearer {args.token}"
    if args.app_id:
        headers["X-App-ID"] = args.app_id
    return headers


def main():
    parser = argparse.ArgumentParser(
        description="CLI tool for the Expand Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the demo service")
    serve_parser.add_argument("--config", help="Config file (YAML or JSON)")
    serve_parser.add_argument("--host", help="Bind host")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Show expandable fields of a schema document")
    inspect_parser.add_argument(
        "schema",
        nargs="?",
        help="Schema document (YAML or JSON); configured or packaged sample if omitted",
    )
    inspect_parser.add_argument("--json", action="store_true", help="Output JSON")

    # get command
    get_parser = subparsers.add_parser("get", help="GET a path from a running service")
    get_parser.add_argument("path", help="Request path (e.g., /patients/pat_ada)")
    get_parser.add_argument("--expand", "-e", help="Expand paths (e.g., person,careTeam.person)")
    get_parser.add_argument("--base-url", default="http://localhost:8060", help="Service URL")
    get_parser.add_argument("--token", help="Bearer token")
    get_parser.add_argument("--app-id", help="Application ID")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "inspect":
        return cmd_inspect(args)
    elif args.command == "get":
        return asyncio.run(cmd_get(args))
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)

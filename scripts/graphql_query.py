#!/usr/bin/env python3
"""Log in and run one GraphQL document against the departmental API.

Usage:
    # Using environment variables:
    DEPT_EMAIL=me@example.com DEPT_PASSWORD=secret python scripts/graphql_query.py \
        --query '{ organizations { id name } }'

    # Or with command line args:
    python scripts/graphql_query.py --email me@example.com --password secret \
        --query 'query Tasks($projectId: ID) { tasks(projectId: $projectId) { id name } }' \
        --variables '{"projectId": "1"}'

    # Reuse a persisted session instead of logging in:
    DEPT_SESSION_FILE=~/.deptclient/session.json python scripts/graphql_query.py --query '{ me { id } }'

Environment Variables:
    DEPT_API_URL: GraphQL endpoint (default http://localhost:4000/graphql)
    DEPT_EMAIL / DEPT_PASSWORD: Login credentials
    DEPT_SESSION_FILE: Optional path where the session is persisted
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def run_query(
    query: str,
    variables: dict | None,
    email: str | None = None,
    password: str | None = None,
) -> dict:
    """Run ``query``, logging in first when credentials are given."""
    # Import here to avoid loading config before env vars are set
    from deptclient.service.runtime import get_runtime

    runtime = get_runtime()
    try:
        if email and password:
            identity = await runtime.auth.login(email, password)
            print(f"Logged in as {identity.display_name} (id: {identity.id})", file=sys.stderr)
        elif not runtime.store.is_active():
            print("Note: no session; sending the request unauthenticated", file=sys.stderr)
        return await runtime.client.execute({"query": query, "variables": variables})
    finally:
        await runtime.aclose()


def main():
    parser = argparse.ArgumentParser(
        description="Run a GraphQL query against the departmental API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("DEPT_EMAIL"),
        help="Login email (or set DEPT_EMAIL env var)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("DEPT_PASSWORD"),
        help="Login password (or set DEPT_PASSWORD env var)",
    )
    parser.add_argument("--query", required=True, help="GraphQL document to run")
    parser.add_argument(
        "--variables",
        default=None,
        help="JSON object of variables",
    )

    args = parser.parse_args()

    variables = None
    if args.variables:
        try:
            variables = json.loads(args.variables)
        except json.JSONDecodeError as e:
            print(f"Error: --variables is not valid JSON: {e}")
            sys.exit(1)
        if not isinstance(variables, dict):
            print("Error: --variables must be a JSON object")
            sys.exit(1)

    if bool(args.email) != bool(args.password):
        print("Error: --email and --password must be given together")
        sys.exit(1)

    from deptclient.service.errors import ClientError

    try:
        data = asyncio.run(run_query(args.query, variables, args.email, args.password))
    except ClientError as e:
        print(f"Error ({e.error_code}): {e.message}")
        sys.exit(1)

    print(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()

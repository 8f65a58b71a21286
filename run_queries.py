#!/usr/bin/env python3
"""
Resolve page queries from the command line.

Usage:
    python run_queries.py queries.yaml [--config config.yaml] [--no-cache] [--json]

See pagequery/cli.py for the queries file format.
"""

import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pagequery.cli import entrypoint


if __name__ == "__main__":
    entrypoint()

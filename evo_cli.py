#!/usr/bin/env python3
"""
CSG Evolution CLI - Minimal entry point.

This is the command-line interface for the evolutionary CSG reconstruction.
All configuration is specified in YAML files.

Usage:
    python3 evo_cli.py run_config.yaml [-v | -vv]
    python3 evo_cli.py --config run_config.yaml
    python3 evo_cli.py --help

Examples:
    # Search one CSG tree over all primitives
    python3 evo_cli.py configs/tree_run.yaml

    # Build one tree per clique of primitives
    python3 evo_cli.py configs/cliques_run.yaml
"""

import sys
from pathlib import Path

# Add project root to path if needed
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def main():
    """Main entry point for the CSG evolution CLI."""
    from csg_evo.cli import main as cli_main
    cli_main(sys.argv[1:])


if __name__ == '__main__':
    main()

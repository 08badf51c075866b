"""
CLI module for csg_evo.

Handles run configuration loading, validation, and mode dispatching.

Usage:
    csg-evo run_config.yaml [-v | -vv]
    csg-evo [-v] --config run_config.yaml
    csg-evo --help

Options:
    -v, --verbose   Log generation progress (repeat or use -vv for operator detail)

Examples:
    # Search one CSG tree over all primitives
    csg-evo configs/tree_run.yaml

    # Build one tree per clique of primitives
    csg-evo configs/cliques_run.yaml
"""

import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .data_models import (
    ConfigurationError,
    CreatorParameters,
    GAParameters,
    StopCriterionParameters,
)
from .io_utils import load_config

MODES = ['tree', 'cliques']
SECTIONS = ['ga', 'creator', 'stop_criterion', 'ranker', 'problem', 'output']
LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


class ConfigValidationError(Exception):
    """Raised when run configuration is invalid."""
    pass


def load_run_config(config_path: str) -> Dict[str, Any]:
    """
    Load run configuration from YAML file.

    Args:
        config_path: Path to run configuration YAML file

    Returns:
        Dictionary containing run configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
    """
    try:
        config = load_config(config_path)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in configuration file: {e}")

    if not config:
        raise ConfigValidationError("Configuration file is empty")
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration file must contain a mapping")

    return config


def build_parameters(config: Dict[str, Any]) -> Tuple[GAParameters, CreatorParameters, StopCriterionParameters, int]:
    """
    Build the parameter objects of a run.

    The top-level `seed` is used as creator seed unless `creator.seed` is set.

    Args:
        config: Run configuration dictionary

    Returns:
        Tuple of (GA parameters, creator parameters, stop parameters, tournament size)

    Raises:
        ConfigValidationError: If a parameter is unknown or out of range
    """
    ga_section = dict(config.get('ga') or {})
    tournament_k = ga_section.pop('tournament_k', 2)

    creator_section = dict(config.get('creator') or {})
    if 'seed' in config and 'seed' not in creator_section:
        creator_section['seed'] = config['seed']

    try:
        ga_params = GAParameters.from_dict(ga_section)
        creator_params = CreatorParameters.from_dict(creator_section)
        stop_params = StopCriterionParameters.from_dict(dict(config.get('stop_criterion') or {}))
    except (ConfigurationError, TypeError) as e:
        raise ConfigValidationError(str(e))

    if not isinstance(tournament_k, int) or tournament_k < 1:
        raise ConfigValidationError(
            f"'ga.tournament_k' must be a positive integer, got: {tournament_k}"
        )

    return ga_params, creator_params, stop_params, tournament_k


def validate_run_config(config: Dict[str, Any]) -> None:
    """
    Validate run configuration structure.

    Args:
        config: Run configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    # Check mode field
    if 'mode' not in config:
        raise ConfigValidationError("Missing required field: 'mode'")

    mode = config['mode']
    if mode not in MODES:
        raise ConfigValidationError(
            f"Invalid mode: '{mode}'. Must be 'tree' or 'cliques'"
        )

    # Check required sections
    for section in ['problem', 'output']:
        if section not in config:
            raise ConfigValidationError(f"Missing required field: '{section}'")

    for section in SECTIONS:
        if section in config and config[section] is not None and not isinstance(config[section], dict):
            raise ConfigValidationError(f"'{section}' must be a dictionary")

    if 'root' not in config['output']:
        raise ConfigValidationError("Missing required field: 'output.root'")

    if 'seed' in config and config['seed'] is not None and not isinstance(config['seed'], int):
        raise ConfigValidationError(f"'seed' must be an integer, got: {config['seed']}")

    build_parameters(config)
    _validate_ranker_config(config.get('ranker') or {})

    problem = config['problem']
    names = _validate_primitives(problem)

    points = problem.get('points_per_primitive', 500)
    if not isinstance(points, int) or points <= 0:
        raise ConfigValidationError(
            f"'problem.points_per_primitive' must be a positive integer, got: {points}"
        )

    # Mode-specific validation
    if mode == 'cliques':
        _validate_cliques_config(problem, names)


def _validate_ranker_config(ranker: Dict[str, Any]) -> None:
    known = {'epsilon', 'alpha'}
    unknown = set(ranker) - known
    if unknown:
        raise ConfigValidationError(f"Unknown ranker field(s): {', '.join(sorted(unknown))}")

    for key in known:
        if key in ranker and (not isinstance(ranker[key], (int, float)) or ranker[key] <= 0):
            raise ConfigValidationError(f"'ranker.{key}' must be a positive number, got: {ranker[key]}")


def _validate_primitives(problem: Dict[str, Any]) -> List[str]:
    """
    Validate the primitive list of the problem section.

    Returns:
        Primitive names in configuration order

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    primitives = problem.get('primitives')
    if not isinstance(primitives, list) or not primitives:
        raise ConfigValidationError("'problem.primitives' must be a non-empty list")

    names = []
    for entry in primitives:
        if not isinstance(entry, dict) or 'name' not in entry or 'type' not in entry:
            raise ConfigValidationError(f"Primitive entries need 'name' and 'type', got: {entry}")
        if entry['type'] not in ('sphere', 'box'):
            raise ConfigValidationError(
                f"Invalid primitive type: '{entry['type']}'. Must be 'sphere' or 'box'"
            )
        names.append(entry['name'])

    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigValidationError(f"Duplicate primitive names: {', '.join(duplicates)}")

    if 'target' in problem and not isinstance(problem['target'], dict):
        raise ConfigValidationError("'problem.target' must be a dictionary")

    return names


def _validate_cliques_config(problem: Dict[str, Any], names: List[str]) -> None:
    """
    Validate cliques mode configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if 'cliques' not in problem:
        raise ConfigValidationError("Cliques mode requires 'problem.cliques' field")

    cliques = problem['cliques']
    if not isinstance(cliques, list):
        raise ConfigValidationError("'problem.cliques' must be a list of primitive name lists")

    for clique in cliques:
        if not isinstance(clique, list):
            raise ConfigValidationError(f"Clique must be a list of primitive names, got: {clique}")
        for name in clique:
            if name not in names:
                raise ConfigValidationError(f"Clique references unknown primitive: '{name}'")


def run_from_config(config_path: str) -> None:
    """
    Load run configuration and execute appropriate mode.

    This is the main entry point called by main() and evo_cli.py.

    Args:
        config_path: Path to run configuration YAML file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
        Various exceptions from mode implementations
    """
    # Load and validate config
    print(f"Loading configuration from: {config_path}")
    config = load_run_config(config_path)

    print(f"Validating configuration...")
    validate_run_config(config)

    mode = config['mode']
    print(f"Mode: {mode}\n")

    # Dispatch to appropriate mode
    if mode == 'tree':
        from .orchestration import run_tree_mode
        run_tree_mode(config)
    elif mode == 'cliques':
        from .orchestration import run_cliques_mode
        run_cliques_mode(config)
    else:
        # Should never reach here due to validation
        raise ConfigValidationError(f"Invalid mode: {mode}")

    print("\nRun completed successfully!")


def parse_args(argv: List[str]) -> Tuple[Optional[str], int]:
    """
    Parse command-line arguments.

    Flags may appear anywhere. `-v`/`--verbose` raise the verbosity by one,
    `-vv` by two.

    Returns:
        Tuple of (config path or None, verbosity)

    Raises:
        ConfigValidationError: If arguments are malformed
    """
    config_path = None
    verbosity = 0

    args = iter(argv)
    for arg in args:
        if arg in ['-v', '--verbose']:
            verbosity += 1
        elif arg == '-vv':
            verbosity += 2
        elif arg.startswith('--config='):
            config_path = arg.split('=', 1)[1]
        elif arg == '--config':
            config_path = next(args, None)
            if config_path is None:
                raise ConfigValidationError("--config requires an argument")
        elif arg.startswith('-'):
            raise ConfigValidationError(f"Unknown option: {arg}")
        elif config_path is None:
            config_path = arg
        else:
            raise ConfigValidationError(f"Unexpected argument: {arg}")

    return config_path, verbosity


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point."""
    argv = sys.argv[1:] if argv is None else argv

    # Handle help
    if not argv or any(arg in ['-h', '--help', 'help'] for arg in argv):
        print(__doc__)
        sys.exit(0 if argv else 1)

    try:
        config_path, verbosity = parse_args(argv)
    except ConfigValidationError as e:
        print(f"Error: {e}")
        print(__doc__)
        sys.exit(1)

    if config_path is None:
        print("Error: no run configuration given")
        print(__doc__)
        sys.exit(1)

    logging.basicConfig(
        level=LOG_LEVELS[min(verbosity, len(LOG_LEVELS) - 1)],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        run_from_config(config_path)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)

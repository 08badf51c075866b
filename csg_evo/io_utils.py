"""
I/O utilities for csg_evo.

Handles YAML configuration loading, CSG tree JSON serialization, Graphviz
export, statistics CSV files and run summaries.
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .csg_tree import CSGNode, OperationType
from .data_models import GAResult, GenerationStats, RunStatistics

STATISTICS_COLUMNS = ['generation', 'best_score', 'mean_score', 'worst_score', 'timestamp', 'duration']


def _prepare_output(output_path: Union[str, Path], overwrite: bool, what: str) -> Path:
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"{what} already exists: {output_path}")

    # Create parent directory if needed
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def load_config(config_path: Union[str, Path]) -> dict:
    """
    Load a YAML configuration file.

    Args:
        config_path: Path to config YAML file

    Returns:
        Configuration dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If config file doesn't exist
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return config or {}


def tree_to_dict(node: CSGNode) -> Dict[str, Any]:
    """
    Convert a CSG tree to nested dictionaries.

    Leaves become {"geometry": <primitive name>}, operations
    {"op": <operation>, "childs": [...]}.
    """
    if node.is_leaf:
        return {"geometry": node.name}
    return {
        "op": node.operation.value,
        "childs": [tree_to_dict(child) for child in node.children],
    }


def tree_from_dict(data: Mapping[str, Any], primitives: Mapping[str, Any]) -> CSGNode:
    """
    Build a CSG tree from nested dictionaries.

    Args:
        data: Dictionary as produced by tree_to_dict
        primitives: Mapping from primitive name to primitive

    Returns:
        Validated CSG tree

    Raises:
        ValueError: If the structure is invalid or a primitive is unknown
    """
    if "geometry" in data:
        name = data["geometry"]
        if name not in primitives:
            raise ValueError(f"Unknown primitive '{name}' in tree")
        return CSGNode(OperationType.GEOMETRY, primitives[name])

    op_name = data.get("op")
    try:
        operation = OperationType(op_name)
    except ValueError:
        raise ValueError(f"Unknown operation '{op_name}' in tree") from None
    if operation == OperationType.GEOMETRY:
        raise ValueError("Geometry nodes must be given as {'geometry': <name>}")

    node = CSGNode(operation)
    for child in data.get("childs", []):
        node.add_child(tree_from_dict(child, primitives))
    node.validate()
    return node


def save_tree_json(
    node: CSGNode,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save a CSG tree as JSON.

    Args:
        node: Tree to save
        output_path: Path for output JSON
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved file

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = _prepare_output(output_path, overwrite, "Tree file")

    with open(output_path, 'w') as f:
        json.dump(tree_to_dict(node), f, indent=2)

    return output_path


def load_tree_json(tree_path: Union[str, Path], primitives: Mapping[str, Any]) -> CSGNode:
    """
    Load a CSG tree from JSON, resolving leaves through `primitives`.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the tree is invalid
    """
    tree_path = Path(tree_path)

    if not tree_path.exists():
        raise FileNotFoundError(f"Tree file not found: {tree_path}")

    with open(tree_path, 'r') as f:
        data = json.load(f)

    return tree_from_dict(data, primitives)


def write_node_dot(
    node: CSGNode,
    output_path: Union[str, Path],
    overwrite: bool = True
) -> Path:
    """
    Write a CSG tree as an undirected Graphviz graph.

    Args:
        node: Tree to write
        output_path: Path for output .gv file
        overwrite: If True, overwrite existing file

    Returns:
        Path to written file
    """
    output_path = _prepare_output(output_path, overwrite, "Graph file")

    ids = {id(n): i for i, n in enumerate(node.iter_nodes())}

    lines = ["graph {"]
    for n in node.iter_nodes():
        lines.append(f'  n{ids[id(n)]} [label="{n.name}"];')
    for n in node.iter_nodes():
        for child in n.children:
            lines.append(f"  n{ids[id(n)]} -- n{ids[id(child)]};")
    lines.append("}")

    with open(output_path, 'w') as f:
        f.write("\n".join(lines) + "\n")

    return output_path


def save_statistics(
    statistics: RunStatistics,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save run statistics to CSV, one row per generation.

    CSV format:
        generation,best_score,mean_score,worst_score,timestamp,duration
        1,12.5,3.2,-4.0,1700000000.0,0.02

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = _prepare_output(output_path, overwrite, "Statistics file")

    with open(output_path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=STATISTICS_COLUMNS)
        writer.writeheader()
        for row in statistics.to_rows():
            writer.writerow(row)

    return output_path


def load_statistics(csv_path: Union[str, Path]) -> RunStatistics:
    """
    Load run statistics from CSV.

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If CSV format is invalid
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"Statistics file not found: {csv_path}")

    statistics = RunStatistics()
    with open(csv_path, 'r') as f:
        reader = csv.DictReader(f)

        required = STATISTICS_COLUMNS[:5]
        if reader.fieldnames is None or not all(col in reader.fieldnames for col in required):
            raise ValueError(f"Invalid CSV format in {csv_path}. Expected columns: {','.join(STATISTICS_COLUMNS)}")

        for row in reader:
            statistics.append(GenerationStats.from_dict(row))

    return statistics


def save_result_summary(
    result: GAResult,
    output_path: Union[str, Path],
    extra: Optional[Dict[str, Any]] = None,
    overwrite: bool = False
) -> Path:
    """
    Save a YAML summary of a GA result.

    Args:
        result: Result to summarize
        output_path: Path for output YAML
        extra: Additional entries (e.g. seed, config path)
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved summary

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = _prepare_output(output_path, overwrite, "Summary file")

    summary = {
        'best_score': float(result.best_score),
        'best_genome': str(result.best_genome),
        'best_generation': result.best_generation,
        'generations_run': result.generations_run,
        'cancelled': result.cancelled,
        'stop_reason': result.stop_reason,
        'population_size': len(result.population),
        'saved_at': datetime.now().isoformat(),
    }
    if hasattr(result.best_genome, 'num_nodes'):
        summary['best_num_nodes'] = result.best_genome.num_nodes()
    if extra:
        summary.update(extra)

    with open(output_path, 'w') as f:
        yaml.dump(summary, f, default_flow_style=False, sort_keys=False)

    return output_path


def save_metadata(
    metadata: dict,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save metadata to a YAML file.

    Args:
        metadata: Metadata dictionary
        output_path: Path for output YAML
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved metadata file

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = _prepare_output(output_path, overwrite, "Metadata file")

    with open(output_path, 'w') as f:
        yaml.dump(metadata, f, default_flow_style=False, sort_keys=False)

    return output_path

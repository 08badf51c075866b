"""
Orchestration module for csg_evo.

Implements the tree and cliques run workflows driven by a run configuration.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import numpy as np

from .cli import build_parameters
from .data_models import GenerationStats
from .implicit import ImplicitFunction, attach_surface_samples, primitives_from_config
from .io_utils import (
    save_metadata,
    save_result_summary,
    save_statistics,
    save_tree_json,
    tree_from_dict,
    write_node_dot,
)
from .pipeline import compute_nodes_for_cliques, create_csg_tree_with_ga


def _setup_problem(run_config: Dict) -> Tuple[List[ImplicitFunction], int, int]:
    """
    Build primitives and attach sample points.

    Returns:
        Tuple of (primitives, seed, total number of sample points)
    """
    problem = run_config['problem']

    # Setup RNG
    seed = run_config.get('seed')
    if seed is None:
        seed = int(np.random.randint(0, 2**31))
    print(f"Random seed: {seed}")
    rng = np.random.default_rng(seed)

    primitives = primitives_from_config(problem['primitives'])
    by_name = {p.name: p for p in primitives}
    print(f"Primitives: {', '.join(by_name)}")

    target = None
    if 'target' in problem:
        target = tree_from_dict(problem['target'], by_name)
        print(f"Target: {target}")

    total_points = attach_surface_samples(
        primitives,
        target,
        points_per_primitive=problem.get('points_per_primitive', 500),
        rng=rng,
        epsilon=problem.get('surface_epsilon', 1e-6),
        noise=problem.get('noise', 0.0),
    )
    print(f"Sample points: {total_points}")

    return primitives, seed, total_points


def _prepare_output_root(run_config: Dict) -> Tuple[Path, bool]:
    # Create output directory
    output_root = Path(run_config['output']['root'])
    overwrite = run_config['output'].get('overwrite', False)

    if output_root.exists() and not overwrite:
        raise FileExistsError(
            f"Output directory already exists: {output_root}\n"
            f"Set 'output.overwrite: true' in config to overwrite"
        )

    output_root.mkdir(parents=True, exist_ok=overwrite)
    print(f"Output directory: {output_root}\n")
    return output_root, overwrite


def _progress_printer(max_generations: int, report_every: int) -> Callable[[GenerationStats], None]:
    def report(stats: GenerationStats) -> None:
        # Progress reporting
        if stats.generation % report_every == 0 or stats.generation == max_generations:
            print(f"  Progress: {stats.generation}/{max_generations} generations "
                  f"(best: {stats.best_score:.4f}, mean: {stats.mean_score:.4f})")
    return report


def _ga_kwargs(run_config: Dict, seed: int) -> Dict[str, Any]:
    ga_params, creator_params, stop_params, tournament_k = build_parameters(run_config)
    ranker_config = run_config.get('ranker') or {}

    kwargs = dict(
        ga_params=ga_params,
        creator_params=creator_params,
        stop_params=stop_params,
        tournament_k=tournament_k,
        seed=creator_params.seed if creator_params.seed is not None else seed,
    )
    if 'epsilon' in ranker_config:
        kwargs['epsilon'] = ranker_config['epsilon']
    if 'alpha' in ranker_config:
        kwargs['alpha'] = ranker_config['alpha']
    return kwargs


def run_tree_mode(run_config: Dict) -> None:
    """
    Search one CSG tree over all configured primitives.

    Args:
        run_config: Run configuration dict from YAML

    Algorithm:
        1. Setup RNG and build primitives from run_config['problem']
        2. Sample primitive surfaces, keep points on the target surface
        3. Run the GA (creator, ranker, tournament, stop criterion from config)
        4. Save best tree (JSON + Graphviz), statistics CSV, YAML summary
           and optionally a fitness plot to run_config['output']['root']
        5. Print summary report

    Returns:
        None (writes to disk)
    """
    print("=" * 70)
    print("TREE MODE")
    print("=" * 70)

    primitives, seed, total_points = _setup_problem(run_config)
    output_root, overwrite = _prepare_output_root(run_config)

    kwargs = _ga_kwargs(run_config, seed)
    max_generations = kwargs['stop_params'].max_iterations
    report_every = run_config['output'].get('report_every', 10)

    print(f"Population: {kwargs['ga_params'].population_size}, "
          f"stop criterion: {kwargs['stop_params'].type}")
    print(f"Evolving CSG tree over {len(primitives)} primitives...")
    print()

    result = create_csg_tree_with_ga(
        primitives,
        on_generation=_progress_printer(max_generations, report_every),
        **kwargs
    )

    # Save results
    tree_path = save_tree_json(result.best_genome, output_root / 'best_tree.json', overwrite=overwrite)
    graph_path = write_node_dot(result.best_genome, output_root / 'best_tree.gv', overwrite=overwrite)
    stats_path = save_statistics(result.statistics, output_root / 'statistics.csv', overwrite=overwrite)
    summary_path = save_result_summary(
        result,
        output_root / 'summary.yaml',
        extra={'seed': seed, 'sample_points': total_points, 'mode': 'tree'},
        overwrite=overwrite
    )

    if run_config['output'].get('save_plot', True) and len(result.statistics):
        # Set matplotlib to non-interactive backend to avoid display issues
        import matplotlib
        matplotlib.use('Agg')
        from .visualization import plot_statistics
        plot_statistics(result.statistics, output_root / 'fitness.png')

    # Print summary
    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Best tree: {result.best_genome}")
    print(f"Best score: {result.best_score:.4f} (generation {result.best_generation})")
    print(f"Generations run: {result.generations_run} ({result.stop_reason})")
    print(f"Tree file: {tree_path}")
    print(f"Graph file: {graph_path}")
    print(f"Statistics: {stats_path}")
    print(f"Summary: {summary_path}")


def run_cliques_mode(run_config: Dict) -> None:
    """
    Build one CSG tree per configured clique of primitives.

    Args:
        run_config: Run configuration dict from YAML

    Algorithm:
        1. Setup RNG, build primitives and attach sample points
        2. Resolve run_config['problem']['cliques'] (lists of primitive names)
        3. compute_nodes_for_cliques: leaves, best pair combination or GA
        4. Save clique_{i:03d}.json/.gv per clique plus cliques.yaml

    Returns:
        None (writes to disk)
    """
    print("=" * 70)
    print("CLIQUES MODE")
    print("=" * 70)

    primitives, seed, total_points = _setup_problem(run_config)
    by_name = {p.name: p for p in primitives}
    cliques = [[by_name[name] for name in clique] for clique in run_config['problem']['cliques']]

    output_root, overwrite = _prepare_output_root(run_config)
    kwargs = _ga_kwargs(run_config, seed)

    print(f"Computing trees for {len(cliques)} cliques...")
    print()

    results = compute_nodes_for_cliques(cliques, **kwargs)

    entries = []
    for i, (clique, node) in enumerate(results):
        tree_path = save_tree_json(node, output_root / f"clique_{i:03d}.json", overwrite=overwrite)
        write_node_dot(node, output_root / f"clique_{i:03d}.gv", overwrite=overwrite)
        entries.append({
            'primitives': [p.name for p in clique],
            'tree': str(node),
            'num_nodes': node.num_nodes(),
            'file': tree_path.name,
        })
        print(f"  Progress: {i+1}/{len(results)} cliques ({', '.join(p.name for p in clique)} -> {node})")

    summary_path = save_metadata(
        {'seed': seed, 'sample_points': total_points, 'mode': 'cliques', 'cliques': entries},
        output_root / 'cliques.yaml',
        overwrite=overwrite
    )

    # Print summary
    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Cliques solved: {len(results)} of {len(cliques)} (empty cliques are skipped)")
    print(f"Output directory: {output_root}")
    print(f"Summary: {summary_path}")
    print(f"Files created: {len(list(output_root.glob('*.json')))}")

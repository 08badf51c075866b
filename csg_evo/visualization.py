"""
Visualization utilities for csg_evo.

Plots the fitness trace of a GA run.
"""

from pathlib import Path
from typing import Optional, Tuple, Union

import matplotlib.pyplot as plt

from .data_models import RunStatistics


def plot_statistics(statistics: RunStatistics,
                    save_path: Optional[Union[str, Path]] = None,
                    title: str = "GA fitness trace",
                    ax: plt.Axes = None,
                    figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
    """
    Plot best, mean and worst score per generation.

    Args:
        statistics: Statistics of a run
        save_path: If given, the figure is saved there and closed
        title: Axes title
        ax: Axes to draw into (a new figure is created if None)
        figsize: Figure size (width, height) in inches

    Returns:
        The figure holding the plot
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    generations = [s.generation for s in statistics]

    ax.plot(generations, [s.best_score for s in statistics], 'g-', linewidth=2, label='Best')
    ax.plot(generations, [s.mean_score for s in statistics], 'b--', linewidth=1.5, label='Mean')
    ax.plot(generations, [s.worst_score for s in statistics], 'r:', linewidth=1.5, label='Worst')

    ax.set_xlabel('Generation')
    ax.set_ylabel('Score')
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.grid(True, alpha=0.3)
    if generations:
        ax.legend(loc='lower right')

    plt.tight_layout()

    if save_path is not None:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        print(f"  Saved fitness plot: {save_path}")

    return fig

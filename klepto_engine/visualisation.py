# klepto_engine/visualisation.py - plots of the per-generation summaries

import argparse
import csv
import os

import numpy as np
import matplotlib.pyplot as plt

from .analysis import SUMMARY_KEYS

ROLE_COLORS = {
    'foragers': '#16a34a',   # Green
    'klepts': '#dc2626',     # Red
    'handlers': '#1e3a8a',   # Deep blue
}


def load_summary(filename):
    """Loads a summary CSV into a dict of column arrays."""
    with open(filename, 'r', newline='') as f:
        rows = list(csv.DictReader(f))
    return {key: np.array([float(row[key]) for row in rows]) for key in SUMMARY_KEYS}


def plot_summary(summary, save_to=None):
    """Fitness, complexity and role composition over the generations."""
    g = summary['generation']
    fig, (ax_fit, ax_cmplx, ax_roles) = plt.subplots(3, 1, figsize=(10, 10), sharex=True)

    ax_fit.plot(g, summary['ave_fitness'], label='mean fitness')
    ax_fit.plot(g, summary['max_fitness'], label='max fitness', alpha=0.6)
    ax_fit.set_ylabel('fitness')
    ax_fit.legend(loc='upper left')

    ax_cmplx.plot(g, summary['complexity'], color='gray')
    ax_cmplx.set_ylabel('mean complexity')

    for role, color in ROLE_COLORS.items():
        ax_roles.plot(g, summary[role], label=role, color=color)
    ax_roles.set_ylabel('agents (end of generation)')
    ax_roles.set_xlabel('generation')
    ax_roles.legend(loc='upper left')

    # fixed-topology generations
    fixed = summary['fixed'] > 0.5
    if np.any(fixed):
        for ax in (ax_fit, ax_cmplx, ax_roles):
            ax.axvspan(g[fixed][0], g[fixed][-1], color='#78716c', alpha=0.15)

    fig.tight_layout()
    if save_to:
        fig.savefig(save_to)
        plt.close(fig)
    return fig


def main(argv=None):
    parser = argparse.ArgumentParser(description="Plot the summary of a klepto-sim run.")
    parser.add_argument("run_number", type=int, help="The run number to plot")
    parser.add_argument("--output-dir", default="results")
    parser.add_argument("--save", default=None, help="Write the figure instead of showing it")
    args = parser.parse_args(argv)

    filename = os.path.join(args.output_dir, f"run_{args.run_number}_summary.csv")
    print(f"Loading summary from {filename}...")
    fig = plot_summary(load_summary(filename), save_to=args.save)
    if not args.save:
        plt.show()
    return fig


if __name__ == "__main__":
    main()

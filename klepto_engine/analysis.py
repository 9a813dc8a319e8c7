# klepto_engine/analysis.py

import csv
import os

import numpy as np

from . import config as cfg

SUMMARY_KEYS = ['generation', 'fixed', 'ave_fitness', 'max_fitness', 'ave_food',
                'repro_ind', 'complexity', 'foragers', 'klepts', 'handlers']


class Analysis:
    """Per-generation summaries of the main (non burn-in) generations."""

    def __init__(self):
        self.summary = []

    def generation(self, sim):
        agents = sim.agents
        foragers, klepts, handlers = agents.role_counts()
        self.summary.append({
            'generation': sim.generation,
            'fixed': int(sim.fixed()),
            'ave_fitness': float(np.mean(agents.fitness)),
            'max_fitness': float(np.max(agents.fitness)),
            'ave_food': float(np.mean(agents.pop[:, cfg.AGENT_FOOD])),
            'repro_ind': int(np.count_nonzero(agents.fitness > 0.0)),
            'complexity': float(np.mean(agents.ann.complexities())),
            'foragers': foragers,
            'klepts': klepts,
            'handlers': handlers,
        })
        return self.summary[-1]

    def save_csv(self, filename):
        """Writes the summaries to a CSV file."""
        os.makedirs(os.path.dirname(filename) or ".", exist_ok=True)
        with open(filename, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=SUMMARY_KEYS)
            writer.writeheader()
            writer.writerows(self.summary)
        print(f"Successfully saved summary to {filename}")

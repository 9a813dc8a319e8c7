# klepto_engine/population.py

import numpy as np

from . import config as cfg
from . import engine
from .ann import make_any_ann, SENSORY_INPUTS, MOTOR_OUTPUTS
from .config import ConfigurationError
from .landscape import LAYER_ITEMS, LAYER_FORAGERS, LAYER_KLEPTS, LAYER_HANDLERS


def new_agents(n):
    """Agent table: one row per individual, columns as in config.AGENT_*."""
    agents = np.zeros((n, cfg.AGENT_FIELDS), dtype=np.float32)
    agents[:, cfg.AGENT_FORAGING] = 1.0
    agents[:, cfg.AGENT_ANCESTOR] = np.arange(n)
    return agents


def agents_fitness(food, complexity, cmplx_penalty):
    """Food eaten minus the complexity penalty, never negative."""
    return np.maximum(0.0, food - cmplx_penalty * complexity)


class DiscreteDistribution:
    """Roulette wheel over non-negative weights; uniform if all weights are zero."""

    def __init__(self, n):
        self.cdf = np.arange(1, n + 1, dtype=np.float64)

    def mutate(self, weights):
        weights = np.asarray(weights, dtype=np.float64)
        if np.any(weights < 0.0):
            raise ValueError("DiscreteDistribution: negative weight")
        if weights.sum() > 0.0:
            self.cdf = np.cumsum(weights)
        else:
            self.cdf = np.arange(1, weights.shape[0] + 1, dtype=np.float64)

    @property
    def probabilities(self):
        return np.diff(self.cdf, prepend=0.0) / self.cdf[-1]

    def __call__(self, rng, size=None):
        u = rng.random(size) * self.cdf[-1]
        return np.searchsorted(self.cdf, u, side='right')


class Population:
    """
    Live agents and networks plus their staging copies for the next
    generation. All arrays share the population size.
    """

    def __init__(self, n, ann_name):
        self.pop = new_agents(n)
        self.tmp_pop = new_agents(n)
        self.ann = make_any_ann(ann_name, n)
        self.tmp_ann = make_any_ann(ann_name, n)
        layout = self.ann.layout
        if layout.input_size != SENSORY_INPUTS or layout.output_size < MOTOR_OUTPUTS:
            raise ConfigurationError(
                f"ANN '{ann_name}' needs {SENSORY_INPUTS} inputs and at least "
                f"{MOTOR_OUTPUTS} outputs")
        self.fitness = np.zeros(n, dtype=np.float32)
        self.rdist = DiscreteDistribution(n)
        self.ancestors = np.arange(n)

    def __len__(self):
        return self.pop.shape[0]

    def scatter(self, rng, dim):
        self.pop[:, cfg.AGENT_X] = rng.integers(0, dim, len(self))
        self.pop[:, cfg.AGENT_Y] = rng.integers(0, dim, len(self))

    def move(self, landscape):
        self.ann.move(self.pop, landscape[LAYER_ITEMS], landscape[LAYER_FORAGERS],
                      landscape[LAYER_KLEPTS], landscape[LAYER_HANDLERS])

    def assess_fitness(self, cmplx_penalty, fitness_fun=agents_fitness):
        """Scores every agent, then rebuilds the selection distribution."""
        food = self.pop[:, cfg.AGENT_FOOD].astype(np.float64)
        self.fitness[:] = fitness_fun(food, self.ann.complexities(), cmplx_penalty)
        self.rdist.mutate(self.fitness)

    def create_new_generation(self, landscape, param, fixed, rng):
        """
        Fills the staging arrays with offspring of fitness-sampled ancestors,
        mutates the offspring networks and swaps staging and live arrays.
        Parents are never overwritten while offspring are being built.
        """
        n = len(self)
        r = param.sprout_radius
        ancestors = self.rdist(rng, n)
        offsets = rng.integers(-r, r + 1, size=(n, 2))
        engine.sprout(self.tmp_pop, self.pop, ancestors, offsets, landscape.dim)
        self.tmp_ann.assign_from(self.ann, ancestors)
        self.tmp_ann.reset_scratch()
        self.tmp_ann.mutate(param, fixed, rng)

        self.pop, self.tmp_pop = self.tmp_pop, self.pop
        self.ann, self.tmp_ann = self.tmp_ann, self.ann
        self.ancestors = ancestors
        return ancestors

    def role_counts(self):
        handling = self.pop[:, cfg.AGENT_HANDLING] > 0.5
        foraging = ~handling & (self.pop[:, cfg.AGENT_FORAGING] > 0.5)
        return int(foraging.sum()), int((~handling & ~foraging).sum()), int(handling.sum())

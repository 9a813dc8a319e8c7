import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from klepto_engine import config as cfg


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


def make_agents(rows):
    """rows: (x, y, foraging, handling, handle_time) tuples."""
    agents = np.zeros((len(rows), cfg.AGENT_FIELDS), dtype=np.float32)
    for i, (x, y, foraging, handling, handle_time) in enumerate(rows):
        agents[i, cfg.AGENT_X] = x
        agents[i, cfg.AGENT_Y] = y
        agents[i, cfg.AGENT_FORAGING] = foraging
        agents[i, cfg.AGENT_HANDLING] = handling
        agents[i, cfg.AGENT_HANDLE_TIME] = handle_time
    return agents


def torus_distance(a, b, dim):
    d = np.abs(np.asarray(a) - np.asarray(b)) % dim
    return np.minimum(d, dim - d)

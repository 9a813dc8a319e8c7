# klepto_engine/config.py

import copy

# --- THE CANONICAL DEFAULTS ---
# Every upper-case constant below becomes a lower-case attribute of Param.

# Landscape
LANDSCAPE_DIM = 128            # used when no capacity image is given
LANDSCAPE_IMAGES = []          # (layer, path, channel) triples, e.g. ("capacity", "cap.png", "g")
MAX_ITEM_CAP = 5.0             # items per cell at capacity 1.0
ITEM_GROWTH = 0.01             # per cell, per timestep
DETECTION_RATE = 0.2           # per item on the cell
OCCUPANCY_KERNEL = [[1.0, 1.0, 1.0],
                    [1.0, 1.0, 1.0],
                    [1.0, 1.0, 1.0]]

# Agents
N_AGENTS = 1000
ANN = "hidden"                 # see ann.ANN_TYPES
HANDLE_TIME = 5                # timesteps to consume one item
SPROUT_RADIUS = 2
FLEE_RADIUS = 3
CMPLX_PENALTY = 0.001
PROB_TO_FIGHT = 1.0
INITIATOR_WINS = 1.0
INIT_WEIGHT_SD = 0.5           # spread of the initial random weights

# Mutation
MUTATION_PROB = 0.01
MUTATION_STEP = 0.1
MUTATION_KNOCKOUT = 0.001      # structural: input weight set to zero

# Evolution & Experiment Harness
G_BURNIN = 0
G = 100
G_FIX = 0                      # final generations with fixed topology
T = 100
T_FIX = 100
INIT_AGENTS_ANN = ""           # archive to warm-start networks from
INIT_GEN = -1                  # archived generation, -1 for the last one
SEED = None
ARCHIVE_INTERVAL = 10
OUTPUT_DIR = "results"

# --- AGENT TABLE COLUMNS ---
AGENT_X = 0; AGENT_Y = 1
AGENT_FORAGING = 2; AGENT_HANDLING = 3; AGENT_HANDLE_TIME = 4
AGENT_FOOD = 5; AGENT_ANCESTOR = 6

AGENT_KEYS = ['x', 'y', 'foraging', 'handling', 'handle_time', 'food', 'ancestor']
AGENT_FIELDS = len(AGENT_KEYS)

_PROBABILITIES = ('item_growth', 'detection_rate', 'prob_to_fight', 'initiator_wins',
                  'mutation_prob', 'mutation_knockout')
_NON_NEGATIVE = ('max_item_cap', 'sprout_radius', 'flee_radius', 'cmplx_penalty',
                 'init_weight_sd', 'mutation_step', 'g_burnin', 'g', 'g_fix')


class ConfigurationError(RuntimeError):
    """Fatal configuration or construction error, raised before any timestep runs."""


def defaults() -> dict:
    return {name.lower(): copy.deepcopy(value) for name, value in globals().items()
            if name.isupper() and not name.startswith(('_', 'AGENT_'))}


class Param:
    """Run-time parameter set seeded from the module defaults."""

    def __init__(self, **overrides):
        values = defaults()
        for key, value in overrides.items():
            if key not in values:
                raise ConfigurationError(f"Unknown parameter '{key}'")
            values[key] = value
        self.__dict__.update(values)

    def as_dict(self):
        return dict(self.__dict__)

    def validate(self):
        for key in _PROBABILITIES:
            value = getattr(self, key)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{key} must lie in [0, 1], got {value}")
        for key in _NON_NEGATIVE:
            value = getattr(self, key)
            if value < 0:
                raise ConfigurationError(f"{key} must be non-negative, got {value}")
        if self.n_agents < 1:
            raise ConfigurationError("n_agents must be at least 1")
        if self.handle_time < 1:
            raise ConfigurationError("handle_time must be at least 1")
        if self.t < 1 or self.t_fix < 1:
            raise ConfigurationError("t and t_fix must be at least 1")
        if self.g_fix > self.g:
            raise ConfigurationError("g_fix can't exceed g")
        if self.archive_interval < 1:
            raise ConfigurationError("archive_interval must be at least 1")
        kernel = self.occupancy_kernel
        rows = len(kernel)
        if rows == 0 or rows % 2 == 0 or any(len(row) != rows for row in kernel):
            raise ConfigurationError("occupancy_kernel must be a square kernel of odd size")
        return self

    def __repr__(self):
        items = ', '.join(f"{k}={v!r}" for k, v in sorted(self.__dict__.items()))
        return f"Param({items})"

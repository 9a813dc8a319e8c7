# klepto_engine/landscape.py

import numpy as np
from scipy.ndimage import convolve

from . import engine
from .config import ConfigurationError

# Landscape layers
LAYER_CAPACITY = 0
LAYER_ITEMS = 1
LAYER_FORAGERS_COUNT = 2
LAYER_FORAGERS = 3
LAYER_KLEPTS_COUNT = 4
LAYER_KLEPTS = 5
LAYER_HANDLERS_COUNT = 6
LAYER_HANDLERS = 7
LAYER_TEMP = 8

LAYER_NAMES = [
    'capacity', 'items',
    'foragers_count', 'foragers',
    'klepts_count', 'klepts',
    'handlers_count', 'handlers',
    'temp',
]

MIN_LANDSCAPE_DIM = 32


def layer_index(name):
    try:
        return LAYER_NAMES.index(name)
    except ValueError:
        raise ConfigurationError(f"Unknown landscape layer '{name}'") from None


class Landscape:
    """A dim x dim torus of named float layers, indexed [x, y]."""

    def __init__(self, dim=0):
        self.layers = np.zeros((len(LAYER_NAMES), dim, dim), dtype=np.float32)

    @property
    def dim(self):
        return self.layers.shape[1]

    def __getitem__(self, layer):
        return self.layers[layer]

    def wrap(self, x, y):
        return x % self.dim, y % self.dim

    def max_items(self, max_item_cap):
        """Per-cell item ceiling, floor(capacity * max_item_cap)."""
        return np.floor(self.layers[LAYER_CAPACITY].astype(np.float64) * max_item_cap)

    def fill_items(self, max_item_cap):
        self.layers[LAYER_ITEMS] = self.max_items(max_item_cap)

    def grow_items(self, rng, item_growth, max_item_cap):
        """Each cell gains at most one item with probability item_growth."""
        grow = rng.random((self.dim, self.dim)) < item_growth
        engine.grow_items(self.layers[LAYER_ITEMS], self.max_items(max_item_cap), grow)

    def update_occupancy(self, agents, kernel):
        """
        Recounts foragers, kleptoparasites and handlers per cell and smooths
        each count layer with `kernel` on the torus into the layer agents see.
        """
        engine.count_roles(agents, self.layers[LAYER_FORAGERS_COUNT],
                           self.layers[LAYER_KLEPTS_COUNT], self.layers[LAYER_HANDLERS_COUNT])
        kernel = np.asarray(kernel, dtype=np.float32)
        for count, density in ((LAYER_FORAGERS_COUNT, LAYER_FORAGERS),
                               (LAYER_KLEPTS_COUNT, LAYER_KLEPTS),
                               (LAYER_HANDLERS_COUNT, LAYER_HANDLERS)):
            convolve(self.layers[count], kernel, output=self.layers[density], mode='wrap')

    def __repr__(self):
        return f"Landscape(dim={self.dim})"

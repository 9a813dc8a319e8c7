# klepto_engine/terrain.py - landscape layers from images or procedural noise

import numpy as np
from scipy.ndimage import convolve
import matplotlib.image as mpimg

from .config import ConfigurationError
from .landscape import Landscape, LAYER_CAPACITY, layer_index

CHANNELS = {'r': 0, 'g': 1, 'b': 2, 'a': 3}


def generate_capacity(dim, seed=0, patch=9, passes=3):
    """
    Deterministic capacity field in [0, 1] for runs without a capacity image:
    uniform noise from `seed`, box-smoothed on the torus into resource patches
    roughly `patch` cells wide.
    """
    rng = np.random.default_rng(seed)
    field = rng.random((dim, dim))
    size = max(1, min(patch, dim))
    kernel = np.full((size, size), 1.0 / (size * size))
    for _ in range(passes):
        field = convolve(field, kernel, mode='wrap')
    lo, hi = field.min(), field.max()
    if hi > lo:
        field = (field - lo) / (hi - lo)
    return field.astype(np.float32)


def load_image_channel(path, channel='g'):
    """Reads one channel of an image as floats in [0, 1], indexed [x, y]."""
    try:
        image = mpimg.imread(path)
    except (FileNotFoundError, OSError) as e:
        raise ConfigurationError(f"Can't read landscape image '{path}': {e}") from e
    if image.dtype == np.uint8:
        image = image.astype(np.float32) / 255.0
    if image.ndim == 3:
        if channel not in CHANNELS or CHANNELS[channel] >= image.shape[2]:
            raise ConfigurationError(f"Image '{path}' has no channel '{channel}'")
        image = image[:, :, CHANNELS[channel]]
    # image rows are y
    return np.ascontiguousarray(image.T, dtype=np.float32)


def init_layer(landscape, layer, path, channel='g'):
    """
    Copies an image channel into a named layer. The first image fixes the
    landscape size; every later image has to match it.
    """
    data = load_image_channel(path, channel)
    if landscape.dim == 0:
        landscape = Landscape(data.shape[0])
    if data.shape != (landscape.dim, landscape.dim):
        raise ConfigurationError(
            f"image dimension mismatch: '{path}' is {data.shape[0]}x{data.shape[1]}, "
            f"landscape is {landscape.dim}x{landscape.dim}")
    landscape[layer_index(layer)][:] = data
    return landscape


def build_landscape(param, seed=0):
    """Landscape from the configured images, procedural capacity if none is given."""
    landscape = Landscape()
    for layer, path, channel in param.landscape_images:
        landscape = init_layer(landscape, layer, path, channel)
    if landscape.dim == 0:
        landscape = Landscape(param.landscape_dim)
        landscape[LAYER_CAPACITY][:] = generate_capacity(param.landscape_dim, seed)
    return landscape

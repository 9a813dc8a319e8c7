# klepto_engine/archive.py - network populations across runs

import os
from collections import namedtuple

import numpy as np

from .config import ConfigurationError

# un: number of networks, usize: state size per network, blob: (un, usize) states
ArchiveEntry = namedtuple('ArchiveEntry', ['generation', 'un', 'usize', 'blob'])


class ArchiveWriter:
    def __init__(self, path):
        self.path = path
        self._entries = {}

    def append(self, generation, ann):
        self._entries[f"gen_{generation}"] = ann.states.copy()

    def save(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        np.savez_compressed(self.path, **self._entries)
        print(f"Network archive saved to {self.path}")


class ArchiveReader:
    def __init__(self, path):
        try:
            with np.load(path) as npz:
                self._blocks = {int(key[len("gen_"):]): npz[key] for key in npz.files}
        except (FileNotFoundError, OSError, ValueError) as e:
            raise ConfigurationError(f"Can't read network archive '{path}': {e}") from e
        if not self._blocks:
            raise ConfigurationError(f"Network archive '{path}' is empty")
        self.path = path

    @property
    def generations(self):
        return sorted(self._blocks)

    def extract(self, generation):
        """The latest stored generation not after `generation`."""
        stored = [g for g in self.generations if g <= generation]
        if not stored:
            raise ConfigurationError(
                f"Network archive '{self.path}' holds no generation <= {generation}")
        g = stored[-1]
        blob = self._blocks[g]
        return ArchiveEntry(g, blob.shape[0], blob.shape[1], blob)


def uncompress(dst, entry, pitch):
    """Writes the entry's states into the flat arena `dst` with row pitch `pitch`."""
    rows = dst.reshape(-1)[:entry.un * pitch].reshape(entry.un, pitch)
    rows[:, :entry.usize] = entry.blob


def init_anns_from_archive(population, reader, generation):
    entry = reader.extract(generation)
    ann = population.ann
    if entry.un != ann.size:
        raise ConfigurationError(
            f"Number of ANNs doesn't match: archive {entry.un}, population {ann.size}")
    if entry.usize != ann.type_size:
        raise ConfigurationError(
            f"ANN state size doesn't match: archive {entry.usize}, network {ann.type_size}")
    uncompress(ann.data, entry, ann.stride)
    # recurrent memory starts empty, as in every new generation
    ann.reset_scratch()
    return entry

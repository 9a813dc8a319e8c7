# klepto_engine/observer.py

import time

# Simulation messages
INITIALIZED = 0
WATCHDOG = 1         # burn-in timestep done
NEW_GENERATION = 2
POST_TIMESTEP = 3
GENERATION = 4
FINISHED = 5


class Observer:
    """
    Receives simulation messages. Returning False from notify stops the run.
    Observers chain: the default notify hands the message to the next one.
    """

    def __init__(self, next_observer=None):
        self.next_observer = next_observer

    def notify(self, sim, msg):
        return self.notify_next(sim, msg)

    def notify_next(self, sim, msg):
        if self.next_observer is None:
            return True
        return self.next_observer.notify(sim, msg)


class SimpleObserver(Observer):
    """Prints one line per generation."""

    def __init__(self, next_observer=None):
        super().__init__(next_observer)
        self._start = 0.0

    def notify(self, sim, msg):
        if msg == INITIALIZED:
            print("Simulation initialized")
        elif msg == NEW_GENERATION:
            self._start = time.perf_counter()
            print(f"Generation: {sim.generation}{'*' if sim.fixed() else ' '}  ", end='')
        elif msg == GENERATION:
            s = sim.analysis.summary[-1]
            elapsed = int(1000 * (time.perf_counter() - self._start))
            print(f"{s['ave_fitness']:.3f}   {s['repro_ind']}   ({s['complexity']:.1f});   {elapsed}ms")
        elif msg == FINISHED:
            print("Simulation finished")
        return self.notify_next(sim, msg)


class ArchiveObserver(Observer):
    """Stores the evaluated networks every `interval` generations and at the end."""

    def __init__(self, writer, interval, next_observer=None):
        super().__init__(next_observer)
        self.writer = writer
        self.interval = interval

    def notify(self, sim, msg):
        if msg == GENERATION:
            g = sim.generation
            if g % self.interval == 0 or g == sim.param.g - 1:
                self.writer.append(g, sim.agents.ann)
        elif msg == FINISHED:
            self.writer.save()
        return self.notify_next(sim, msg)

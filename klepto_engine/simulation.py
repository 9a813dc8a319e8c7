# klepto_engine/simulation.py

import numpy as np

from . import engine
from . import observer as obs
from .analysis import Analysis
from .archive import ArchiveReader, init_anns_from_archive
from .config import ConfigurationError
from .landscape import LAYER_ITEMS, LAYER_TEMP, MIN_LANDSCAPE_DIM
from .population import Population, agents_fitness
from .terrain import build_landscape


class Simulation:
    """
    One landscape and one population of forager/kleptoparasite agents.
    Everything stochastic draws from a single numpy Generator seeded from
    param.seed, so a run is reproducible for a fixed seed.
    """

    def __init__(self, param, fitness_fun=agents_fitness):
        self.param = param.validate()
        self.g = -1
        self.t = -1
        self.rng = np.random.default_rng(param.seed)
        self.fitness_fun = fitness_fun
        self.kernel = np.asarray(param.occupancy_kernel, dtype=np.float32)
        self.analysis = Analysis()

        self.landscape = build_landscape(param, seed=param.seed or 0)
        if self.landscape.dim < MIN_LANDSCAPE_DIM:
            raise ConfigurationError(
                f"Landscape too small: {self.landscape.dim} < {MIN_LANDSCAPE_DIM}")
        self.landscape.fill_items(param.max_item_cap)

        self.agents = Population(param.n_agents, param.ann)
        self.agents.scatter(self.rng, self.landscape.dim)
        self.agents.ann.randomize(self.rng, param.init_weight_sd)
        self.landscape.update_occupancy(self.agents.pop, self.kernel)

        # optional: initialization from a former run
        if param.init_agents_ann:
            reader = ArchiveReader(param.init_agents_ann)
            g = min(param.init_gen, param.g - 1) if param.init_gen >= 0 else reader.generations[-1]
            init_anns_from_archive(self.agents, reader, g)

    @property
    def generation(self):
        return self.g

    @property
    def timestep(self):
        return self.t

    def fixed(self):
        """True in the final g_fix generations, where topology mutation is off."""
        return 0 <= self.g and self.g >= self.param.g - self.param.g_fix

    def run(self, observer=None) -> bool:
        """Burn-in, then the main generations. Returns False if an observer vetoed."""
        def notify(msg):
            return observer is None or observer.notify(self, msg)

        if not notify(obs.INITIALIZED):
            return False
        for _ in range(self.param.g_burnin):
            for _ in range(self.param.t):
                self.simulate_timestep()
                if not notify(obs.WATCHDOG):
                    return False
            self.assess_fitness()
            self.create_new_generations()

        for g in range(self.param.g):
            self.g = g
            if not notify(obs.NEW_GENERATION):
                return False
            T = self.param.t_fix if self.fixed() else self.param.t
            for t in range(T):
                self.t = t
                self.simulate_timestep()
                if not notify(obs.POST_TIMESTEP):
                    return False
            self.assess_fitness()
            self.analysis.generation(self)
            if not notify(obs.GENERATION):
                return False
            self.create_new_generations()
        return notify(obs.FINISHED)

    def simulate_timestep(self):
        p = self.param
        self.landscape.grow_items(self.rng, p.item_growth, p.max_item_cap)
        engine.do_handle(self.agents.pop)
        self.landscape.update_occupancy(self.agents.pop, self.kernel)

        self.agents.move(self.landscape)
        self.landscape.update_occupancy(self.agents.pop, self.kernel)

        self.resolve_grazing_and_attacks()
        self.landscape.update_occupancy(self.agents.pop, self.kernel)

    def resolve_grazing_and_attacks(self):
        """
        Foraging, then kleptoparasitism: attackers pick a co-located handler,
        the pairs are shuffled and resolved one after the other.
        Returns the (attackers, victims) pairs in resolution order.
        """
        p = self.param
        pop = self.agents.pop
        n = len(pop)
        engine.forage(pop, self.landscape[LAYER_ITEMS], self.rng.permutation(n),
                      self.rng.random(n), p.detection_rate, p.handle_time)

        attackers, victims = engine.collect_conflicts(pop, self.landscape[LAYER_TEMP],
                                                      self.rng.random(n))
        order = self.rng.permutation(len(attackers))
        attackers, victims = attackers[order], victims[order]

        m = len(attackers)
        flee_offsets = self.rng.integers(-p.flee_radius, p.flee_radius + 1, size=(n, 2))
        engine.resolve_conflicts(pop, attackers, victims, self.rng.random(m), self.rng.random(m),
                                 flee_offsets, p.prob_to_fight, p.initiator_wins, self.landscape.dim)
        return attackers, victims

    def assess_fitness(self):
        self.agents.assess_fitness(self.param.cmplx_penalty, self.fitness_fun)

    def create_new_generations(self):
        return self.agents.create_new_generation(self.landscape, self.param, self.fixed(), self.rng)

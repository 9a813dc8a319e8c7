# klepto_engine/engine.py

import numpy as np
import numba

from . import config as cfg

# All randomness is drawn by the caller and handed in as arrays, so every
# kernel is a pure function of its arguments and parallel runs reproduce.

# ==============================================================================
# PART 1: THE LANDSCAPE KERNELS
# ==============================================================================
@numba.njit(parallel=True)
def grow_items(items, max_items, grow):
    """Cells flagged in `grow` gain one item, never beyond max_items."""
    dim = items.shape[0]
    for x in numba.prange(dim):
        for y in range(items.shape[1]):
            if grow[x, y]:
                items[x, y] = min(max_items[x, y], np.floor(items[x, y] + 1.0))


@numba.njit
def count_roles(agents, foragers, klepts, handlers):
    """Raw per-cell head counts of foragers, kleptoparasites and handlers."""
    foragers[:, :] = 0.0
    klepts[:, :] = 0.0
    handlers[:, :] = 0.0
    for i in range(agents.shape[0]):
        x, y = int(agents[i, cfg.AGENT_X]), int(agents[i, cfg.AGENT_Y])
        if agents[i, cfg.AGENT_HANDLING] > 0.5:
            handlers[x, y] += 1.0
        elif agents[i, cfg.AGENT_FORAGING] > 0.5:
            foragers[x, y] += 1.0
        else:
            klepts[x, y] += 1.0


# ==============================================================================
# PART 2: THE PER-AGENT KERNELS
# ==============================================================================
@numba.njit(parallel=True)
def do_handle(agents):
    """Handlers count down; a finished item is eaten and handling ends."""
    for i in numba.prange(agents.shape[0]):
        if agents[i, cfg.AGENT_HANDLING] > 0.5:
            agents[i, cfg.AGENT_HANDLE_TIME] -= 1.0
            if agents[i, cfg.AGENT_HANDLE_TIME] <= 0.0:
                agents[i, cfg.AGENT_HANDLE_TIME] = 0.0
                agents[i, cfg.AGENT_HANDLING] = 0.0
                agents[i, cfg.AGENT_FOOD] += 1.0


@numba.njit(parallel=True)
def sprout(offspring, parents, ancestors, offsets, dim):
    """Offspring i appears near parents[ancestors[i]], fresh and foraging."""
    for i in numba.prange(offspring.shape[0]):
        a = ancestors[i]
        offspring[i, cfg.AGENT_X] = (int(parents[a, cfg.AGENT_X]) + offsets[i, 0]) % dim
        offspring[i, cfg.AGENT_Y] = (int(parents[a, cfg.AGENT_Y]) + offsets[i, 1]) % dim
        offspring[i, cfg.AGENT_FORAGING] = 1.0
        offspring[i, cfg.AGENT_HANDLING] = 0.0
        offspring[i, cfg.AGENT_HANDLE_TIME] = 0.0
        offspring[i, cfg.AGENT_FOOD] = 0.0
        offspring[i, cfg.AGENT_ANCESTOR] = a


# ==============================================================================
# PART 3: GRAZING AND CONFLICTS (SEQUENTIAL)
# ==============================================================================
@numba.njit
def flee(agents, i, offsets, dim):
    agents[i, cfg.AGENT_X] = (int(agents[i, cfg.AGENT_X]) + offsets[i, 0]) % dim
    agents[i, cfg.AGENT_Y] = (int(agents[i, cfg.AGENT_Y]) + offsets[i, 1]) % dim
    agents[i, cfg.AGENT_HANDLING] = 0.0
    agents[i, cfg.AGENT_HANDLE_TIME] = 0.0


@numba.njit
def forage(agents, items, order, draws, detection_rate, handle_time):
    """
    Foraging agents that aren't handling search their cell, in `order`.
    Detection succeeds with probability 1 - (1 - detection_rate)^items.
    """
    for k in range(order.shape[0]):
        i = order[k]
        if agents[i, cfg.AGENT_HANDLING] < 0.5 and agents[i, cfg.AGENT_FORAGING] > 0.5:
            x, y = int(agents[i, cfg.AGENT_X]), int(agents[i, cfg.AGENT_Y])
            n = items[x, y]
            if n >= 1.0:
                if draws[i] < 1.0 - (1.0 - detection_rate) ** n:
                    agents[i, cfg.AGENT_HANDLING] = 1.0
                    agents[i, cfg.AGENT_HANDLE_TIME] = handle_time
                    items[x, y] -= 1.0


@numba.njit
def collect_conflicts(agents, handler_count, draws):
    """
    Every agent that is neither handling nor foraging and shares its cell
    with a handler picks one of those handlers uniformly at random.
    `handler_count` is scratch space and ends up with the per-cell handlers.
    Returns the (attackers, victims) pairs in agent order.
    """
    dim = handler_count.shape[0]
    n = agents.shape[0]
    handler_count[:, :] = 0.0
    cell = np.empty(n, np.int64)
    nh = 0
    for i in range(n):
        x, y = int(agents[i, cfg.AGENT_X]), int(agents[i, cfg.AGENT_Y])
        cell[i] = x * dim + y
        if agents[i, cfg.AGENT_HANDLING] > 0.5:
            handler_count[x, y] += 1.0
            nh += 1
    hidx = np.empty(nh, np.int64)
    k = 0
    for i in range(n):
        if agents[i, cfg.AGENT_HANDLING] > 0.5:
            hidx[k] = i
            k += 1
    hcell = cell[hidx]
    srt = np.argsort(hcell, kind='mergesort')
    hidx = hidx[srt]
    hcell = hcell[srt]

    attackers = np.empty(n, np.int64)
    victims = np.empty(n, np.int64)
    na = 0
    for i in range(n):
        if agents[i, cfg.AGENT_HANDLING] > 0.5 or agents[i, cfg.AGENT_FORAGING] > 0.5:
            continue
        x, y = int(agents[i, cfg.AGENT_X]), int(agents[i, cfg.AGENT_Y])
        if handler_count[x, y] < 1.0:
            continue
        lo = np.searchsorted(hcell, cell[i], side='left')
        hi = np.searchsorted(hcell, cell[i], side='right')
        count = hi - lo
        if count > 0:
            pick = min(int(draws[i] * count), count - 1)
            attackers[na] = i
            victims[na] = hidx[lo + pick]
            na += 1
    return attackers[:na], victims[:na]


@numba.njit
def resolve_conflicts(agents, attackers, victims, fight_draws, win_draws, flee_offsets,
                      prob_to_fight, initiator_wins, dim):
    """
    Resolves the pairs in the given order. A victim that already lost its
    item earlier in the list is left alone. The winner of a fight handles
    the item with the victim's remaining timer; the loser flees.
    """
    for k in range(attackers.shape[0]):
        a, v = attackers[k], victims[k]
        if agents[v, cfg.AGENT_HANDLING] < 0.5:
            continue
        if fight_draws[k] < prob_to_fight:
            if win_draws[k] < initiator_wins:
                agents[a, cfg.AGENT_HANDLING] = 1.0
                agents[a, cfg.AGENT_HANDLE_TIME] = agents[v, cfg.AGENT_HANDLE_TIME]
                flee(agents, v, flee_offsets, dim)
            else:
                flee(agents, a, flee_offsets, dim)

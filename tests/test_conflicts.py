import numpy as np

from klepto_engine import config as cfg
from klepto_engine import engine

from conftest import make_agents, torus_distance

DIM = 8


def test_detection_takes_one_item():
    agents = make_agents([(1, 1, 1, 0, 0), (2, 2, 0, 0, 0), (3, 3, 1, 0, 0)])
    items = np.zeros((DIM, DIM), dtype=np.float32)
    items[1, 1] = 3.0
    items[2, 2] = 3.0
    engine.forage(agents, items, np.arange(3), np.zeros(3), 1.0, 4)
    # forager on items
    assert agents[0, cfg.AGENT_HANDLING] == 1.0
    assert agents[0, cfg.AGENT_HANDLE_TIME] == 4.0
    assert items[1, 1] == 2.0
    # not foraging
    assert agents[1, cfg.AGENT_HANDLING] == 0.0
    assert items[2, 2] == 3.0
    # no items
    assert agents[2, cfg.AGENT_HANDLING] == 0.0


def test_detection_probability_grows_with_items():
    agents = make_agents([(0, 0, 1, 0, 0), (1, 1, 1, 0, 0)])
    items = np.zeros((DIM, DIM), dtype=np.float32)
    items[0, 0] = 1.0
    items[1, 1] = 2.0
    # 1 - 0.5^1 = 0.5, 1 - 0.5^2 = 0.75
    engine.forage(agents, items, np.arange(2), np.array([0.6, 0.6]), 0.5, 4)
    assert agents[0, cfg.AGENT_HANDLING] == 0.0
    assert agents[1, cfg.AGENT_HANDLING] == 1.0


def test_last_item_goes_to_first_in_order():
    agents = make_agents([(0, 0, 1, 0, 0), (0, 0, 1, 0, 0)])
    items = np.zeros((DIM, DIM), dtype=np.float32)
    items[0, 0] = 1.0
    engine.forage(agents, items, np.array([1, 0]), np.zeros(2), 1.0, 4)
    assert agents[1, cfg.AGENT_HANDLING] == 1.0
    assert agents[0, cfg.AGENT_HANDLING] == 0.0
    assert items[0, 0] == 0.0


def test_handling_counts_down_and_eats():
    agents = make_agents([(0, 0, 1, 1, 2), (0, 0, 1, 0, 0)])
    engine.do_handle(agents)
    assert agents[0, cfg.AGENT_HANDLING] == 1.0
    assert agents[0, cfg.AGENT_HANDLE_TIME] == 1.0
    engine.do_handle(agents)
    assert agents[0, cfg.AGENT_HANDLING] == 0.0
    assert agents[0, cfg.AGENT_FOOD] == 1.0
    assert agents[1, cfg.AGENT_FOOD] == 0.0


def test_only_idle_agents_next_to_handlers_attack():
    agents = make_agents([
        (1, 1, 1, 1, 3),   # 0: handler
        (1, 1, 0, 0, 0),   # 1: kleptoparasite, same cell
        (1, 1, 0, 0, 0),   # 2: kleptoparasite, same cell
        (2, 2, 0, 0, 0),   # 3: kleptoparasite, no handler around
        (1, 1, 1, 0, 0),   # 4: forager, same cell
        (2, 1, 0, 0, 0),   # 5: kleptoparasite, neighbouring cell
    ])
    temp = np.zeros((DIM, DIM), dtype=np.float32)
    attackers, victims = engine.collect_conflicts(agents, temp, np.full(6, 0.5))
    assert list(attackers) == [1, 2]
    assert list(victims) == [0, 0]
    assert temp[1, 1] == 1.0
    assert temp.sum() == 1.0


def test_victims_are_colocated_handlers(rng):
    n = 300
    rows = [(rng.integers(4), rng.integers(4), rng.integers(2), rng.random() < 0.3, 5)
            for _ in range(n)]
    agents = make_agents(rows)
    temp = np.zeros((4, 4), dtype=np.float32)
    attackers, victims = engine.collect_conflicts(agents, temp, rng.random(n))
    assert len(attackers) == len(victims) > 0
    pos = agents[:, [cfg.AGENT_X, cfg.AGENT_Y]]
    for a, v in zip(attackers, victims):
        assert a != v
        assert agents[v, cfg.AGENT_HANDLING] == 1.0
        assert agents[a, cfg.AGENT_HANDLING] == 0.0
        assert agents[a, cfg.AGENT_FORAGING] == 0.0
        assert np.array_equal(pos[a], pos[v])

    handler_cells = {tuple(pos[i]) for i in range(n) if agents[i, cfg.AGENT_HANDLING] == 1.0}
    expected = [i for i in range(n)
                if agents[i, cfg.AGENT_HANDLING] == 0.0 and agents[i, cfg.AGENT_FORAGING] == 0.0
                and tuple(pos[i]) in handler_cells]
    assert list(attackers) == expected


def test_victim_choice_is_uniform(rng):
    agents = make_agents([(0, 0, 1, 1, 3), (0, 0, 1, 1, 3), (0, 0, 0, 0, 0)])
    temp = np.zeros((DIM, DIM), dtype=np.float32)
    picks = []
    for u in np.linspace(0.0, 0.999, 100):
        _, victims = engine.collect_conflicts(agents, temp, np.array([0.0, 0.0, u]))
        picks.append(victims[0])
    assert picks.count(0) == picks.count(1) == 50


def test_winner_handles_and_loser_flees(rng):
    n = 400
    flee_radius = 2
    rows = [(rng.integers(6), rng.integers(6), rng.integers(2), rng.random() < 0.3,
             rng.integers(1, 6)) for _ in range(n)]
    agents = make_agents(rows)
    temp = np.zeros((6, 6), dtype=np.float32)
    attackers, victims = engine.collect_conflicts(agents, temp, rng.random(n))
    order = rng.permutation(len(attackers))
    attackers, victims = attackers[order], victims[order]
    before = agents.copy()
    offsets = rng.integers(-flee_radius, flee_radius + 1, size=(n, 2))
    m = len(attackers)
    engine.resolve_conflicts(agents, attackers, victims, rng.random(m), rng.random(m),
                             offsets, 1.0, 1.0, 6)

    # the first attacker on a victim wins; the victim is gone for the others
    first = {}
    for a, v in zip(attackers, victims):
        first.setdefault(v, a)
    assert first
    for v, a in first.items():
        assert agents[a, cfg.AGENT_HANDLING] == 1.0
        assert agents[a, cfg.AGENT_HANDLE_TIME] == before[v, cfg.AGENT_HANDLE_TIME] >= 0.0
        assert agents[v, cfg.AGENT_HANDLING] == 0.0
        for axis in (cfg.AGENT_X, cfg.AGENT_Y):
            assert torus_distance(agents[v, axis], before[v, axis], 6) <= flee_radius
    for a, v in zip(attackers, victims):
        if first[v] != a:
            assert agents[a, cfg.AGENT_HANDLING] == 0.0


def test_winner_inherits_remaining_timer():
    agents = make_agents([(1, 1, 1, 1, 4), (1, 1, 0, 0, 0)])
    offsets = np.array([[1, -1], [0, 0]])
    engine.resolve_conflicts(agents, np.array([1]), np.array([0]), np.zeros(1), np.zeros(1),
                             offsets, 1.0, 1.0, DIM)
    assert agents[1, cfg.AGENT_HANDLING] == 1.0
    assert agents[1, cfg.AGENT_HANDLE_TIME] == 4.0
    assert agents[0, cfg.AGENT_HANDLING] == 0.0
    assert agents[0, cfg.AGENT_HANDLE_TIME] == 0.0
    assert (agents[0, cfg.AGENT_X], agents[0, cfg.AGENT_Y]) == (2.0, 0.0)


def test_losing_attacker_flees():
    agents = make_agents([(0, 0, 1, 1, 4), (0, 0, 0, 0, 0)])
    offsets = np.array([[0, 0], [-1, -1]])
    engine.resolve_conflicts(agents, np.array([1]), np.array([0]), np.zeros(1), np.full(1, 0.5),
                             offsets, 1.0, 0.0, DIM)
    assert agents[0, cfg.AGENT_HANDLING] == 1.0
    assert agents[1, cfg.AGENT_HANDLING] == 0.0
    assert (agents[1, cfg.AGENT_X], agents[1, cfg.AGENT_Y]) == (DIM - 1.0, DIM - 1.0)


def test_no_fight_no_change():
    agents = make_agents([(0, 0, 1, 1, 4), (0, 0, 0, 0, 0)])
    before = agents.copy()
    engine.resolve_conflicts(agents, np.array([1]), np.array([0]), np.full(1, 0.5), np.zeros(1),
                             np.zeros((2, 2), dtype=np.int64), 0.0, 1.0, DIM)
    assert np.array_equal(agents, before)


def test_empty_conflict_list():
    agents = make_agents([(0, 0, 1, 0, 0)])
    temp = np.zeros((DIM, DIM), dtype=np.float32)
    attackers, victims = engine.collect_conflicts(agents, temp, np.zeros(1))
    assert len(attackers) == len(victims) == 0
    engine.resolve_conflicts(agents, attackers, victims, np.zeros(0), np.zeros(0),
                             np.zeros((1, 2), dtype=np.int64), 1.0, 1.0, DIM)

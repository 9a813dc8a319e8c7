# klepto_engine/ann.py
#
# Feed-forward neural networks with a flat, per-individual state layout.
#
# A neuron's state slice is laid out as
#   [input weights (bias first, if biased)] [activation params] [feedback params] [feedback scratch]
# and a network's state is the concatenation of all neuron slices, layer by
# layer. Networks of the same layout therefore share offsets, and copy,
# mutation and archiving are plain array operations.

import numpy as np
import numba

from . import config as cfg
from .config import ConfigurationError

# Activation codes
ACT_ZERO = 0
ACT_IDENTITY = 1
ACT_SGN_BIPOLAR = 2
ACT_SGN_UNIPOLAR = 3
ACT_RTLU = 4
ACT_TANH_BIPOLAR = 5
ACT_TANH_UNIPOLAR = 6
ACT_SIG_BIPOLAR = 7
ACT_SIG_UNIPOLAR = 8
ACT_VARSIG_BIPOLAR = 9
ACT_VARSIG_UNIPOLAR = 10

# Feedback codes
FB_NONE = 0
FB_DIRECT = 1

# Layout table columns, one row per layer
L_OFFSET = 0; L_SIZE = 1; L_INPUTS = 2; L_NEURON_STATE = 3; L_BIASED = 4
L_ACT = 5; L_ACT_BEGIN = 6; L_FB = 7; L_FB_BEGIN = 8; L_SCRATCH_BEGIN = 9
L_COLUMNS = 10

SENSORY_INPUTS = 4   # items, foragers, klepts, handlers
MOTOR_OUTPUTS = 2    # cell preference, foraging posture

FLT_MAX = float(np.finfo(np.float32).max)


# ==============================================================================
# PART 1: THE NUMBA KERNELS
# ==============================================================================
@numba.njit
def activate(code, slope, u, state, p):
    """Applies activation `code` to net input `u`; extra parameters start at state[p]."""
    if code == ACT_ZERO:
        return 0.0
    elif code == ACT_IDENTITY:
        return u
    elif code == ACT_SGN_BIPOLAR:
        return 1.0 if u > 0.0 else -1.0
    elif code == ACT_SGN_UNIPOLAR:
        return 1.0 if u > 0.0 else 0.0
    elif code == ACT_RTLU:
        return max(0.0, u)
    elif code == ACT_TANH_BIPOLAR:
        return np.tanh(u)
    elif code == ACT_TANH_UNIPOLAR:
        return 0.5 * (np.tanh(u) + 1.0)
    elif code == ACT_SIG_BIPOLAR:
        # (1 - exp(-a u)) / (1 + exp(-a u)) without the overflow
        return np.tanh(0.5 * slope * u)
    elif code == ACT_SIG_UNIPOLAR:
        return 1.0 / (1.0 + np.exp(-slope * u))
    elif code == ACT_VARSIG_BIPOLAR:
        return np.tanh(0.5 * state[p] * u)
    else:
        return 1.0 / (1.0 + np.exp(-state[p] * u))


@numba.njit
def neuron_feed(x, state, s, n_inputs, biased, act, slope, act_begin, fb, fb_begin, scratch_begin):
    """Evaluates the neuron whose state slice starts at state[s]."""
    u = 0.0
    w = s
    if biased:
        u += state[s]
        w = s + 1
    for i in range(n_inputs):
        u += state[w + i] * x[i]
    if fb == FB_DIRECT:
        u = u + state[s + fb_begin] * state[s + scratch_begin]
        state[s + scratch_begin] = u
    return activate(act, slope, u, state, s + act_begin)


@numba.njit
def network_feed(layout, slopes, state, inputs):
    """Feeds `inputs` through every layer of `layout` over one flat state."""
    x = np.empty(inputs.shape[0])
    for i in range(inputs.shape[0]):
        x[i] = inputs[i]
    for l in range(layout.shape[0]):
        n = layout[l, L_SIZE]
        y = np.empty(n)
        s = layout[l, L_OFFSET]
        for j in range(n):
            y[j] = neuron_feed(x, state, s, layout[l, L_INPUTS], layout[l, L_BIASED] != 0,
                               layout[l, L_ACT], slopes[l], layout[l, L_ACT_BEGIN],
                               layout[l, L_FB], layout[l, L_FB_BEGIN], layout[l, L_SCRATCH_BEGIN])
            s += layout[l, L_NEURON_STATE]
        x = y
    return x


@numba.njit(parallel=True)
def network_feed_batch(layout, slopes, states, inputs, out):
    """Row i of `out` receives the output of network i fed with inputs[i]."""
    for i in numba.prange(states.shape[0]):
        y = network_feed(layout, slopes, states[i], inputs[i])
        for k in range(y.shape[0]):
            out[i, k] = y[k]


@numba.njit(parallel=True)
def move_agents(agents, layout, slopes, states, items, foragers, klepts, handlers):
    """
    Every agent that isn't handling scores its own cell and the 8 neighbours
    with its network, moves to the best one (first wins ties) and takes the
    foraging posture if the second output at that cell is positive.
    Each agent touches only its own network row.
    """
    dim = items.shape[0]
    for i in numba.prange(agents.shape[0]):
        if agents[i, cfg.AGENT_HANDLING] < 0.5:
            x0, y0 = int(agents[i, cfg.AGENT_X]), int(agents[i, cfg.AGENT_Y])
            state = states[i]
            inputs = np.empty(4)
            best = -np.inf
            bx, by = x0, y0
            posture = 0.0
            for k in range(9):
                # own cell first, then the Moore neighbourhood
                dx = (k // 3 + 1) % 3 - 1
                dy = (k % 3 + 1) % 3 - 1
                cx, cy = (x0 + dx) % dim, (y0 + dy) % dim
                inputs[0] = items[cx, cy]
                inputs[1] = foragers[cx, cy]
                inputs[2] = klepts[cx, cy]
                inputs[3] = handlers[cx, cy]
                out = network_feed(layout, slopes, state, inputs)
                if out[0] > best:
                    best = out[0]
                    bx, by = cx, cy
                    posture = out[1]
            agents[i, cfg.AGENT_X] = bx
            agents[i, cfg.AGENT_Y] = by
            agents[i, cfg.AGENT_FORAGING] = 1.0 if posture > 0.0 else 0.0


# ==============================================================================
# PART 2: ACTIVATIONS, FEEDBACKS AND NEURONS
# ==============================================================================
class Activation:
    """Scalar transfer function with a closed output range [min, max]."""

    def __init__(self, name, code, lo, hi, extra_state=0, slope=1.0):
        self.name = name
        self.code = code
        self.min = lo
        self.max = hi
        self.extra_state = extra_state
        self.slope = float(slope)

    def apply(self, u, extra=None):
        params = np.zeros(max(1, self.extra_state), dtype=np.float32)
        if extra is not None:
            params[:len(extra)] = extra
        return activate(self.code, self.slope, float(u), params, 0)

    def __repr__(self):
        return f"Activation({self.name})"


ZERO = Activation('zero', ACT_ZERO, 0.0, 0.0)
IDENTITY = Activation('identity', ACT_IDENTITY, -FLT_MAX, FLT_MAX)
SGN_BIPOLAR = Activation('sgn.bipolar', ACT_SGN_BIPOLAR, -1.0, 1.0)
SGN_UNIPOLAR = Activation('sgn.unipolar', ACT_SGN_UNIPOLAR, 0.0, 1.0)
RTLU = Activation('rtlu', ACT_RTLU, 0.0, FLT_MAX)
TANH_BIPOLAR = Activation('tanh.bipolar', ACT_TANH_BIPOLAR, -1.0, 1.0)
TANH_UNIPOLAR = Activation('tanh.unipolar', ACT_TANH_UNIPOLAR, 0.0, 1.0)
VARSIG_BIPOLAR = Activation('varsig.bipolar', ACT_VARSIG_BIPOLAR, -1.0, 1.0, extra_state=1)
VARSIG_UNIPOLAR = Activation('varsig.unipolar', ACT_VARSIG_UNIPOLAR, 0.0, 1.0, extra_state=1)


def sig_bipolar(n=1, d=1):
    """Sigmoid in [-1, 1] with fixed slope n/d."""
    return Activation(f'sig.bipolar<{n},{d}>', ACT_SIG_BIPOLAR, -1.0, 1.0, slope=n / d)


def sig_unipolar(n=1, d=1):
    """Sigmoid in [0, 1] with fixed slope n/d."""
    return Activation(f'sig.unipolar<{n},{d}>', ACT_SIG_UNIPOLAR, 0.0, 1.0, slope=n / d)


class Feedback:
    def __init__(self, name, code, state=0, scratch=0):
        self.name = name
        self.code = code
        self.state = state
        self.scratch = scratch

    def __repr__(self):
        return f"Feedback({self.name})"


NO_FEEDBACK = Feedback('none', FB_NONE)
# u + gain * previous u; the previous value lives in the scratch slot
DIRECT_FEEDBACK = Feedback('direct', FB_DIRECT, state=1, scratch=1)


class Neuron:
    """Neuron type: (inputs, activation, feedback, biased). Holds no state itself."""

    def __init__(self, inputs, activation, feedback=NO_FEEDBACK, biased=True):
        self.input_size = inputs
        self.activation = activation
        self.feedback = feedback
        self.biased = biased
        self.input_weights = inputs + (1 if biased else 0)
        self.activation_state = activation.extra_state
        self.feedback_state = feedback.state
        self.feedback_scratch = feedback.scratch
        self.activation_begin = self.input_weights
        self.feedback_begin = self.activation_begin + self.activation_state
        self.feedback_scratch_begin = self.feedback_begin + self.feedback_state
        self.total_weights = self.feedback_scratch_begin
        self.state_size = self.total_weights + self.feedback_scratch

    @property
    def min(self):
        return self.activation.min

    @property
    def max(self):
        return self.activation.max

    def feed(self, inputs, state):
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape[0] != self.input_size:
            raise ValueError(f"Neuron expects {self.input_size} inputs, got {x.shape[0]}")
        return neuron_feed(x, state, 0, self.input_size, self.biased,
                           self.activation.code, self.activation.slope, self.activation_begin,
                           self.feedback.code, self.feedback_begin, self.feedback_scratch_begin)

    def __repr__(self):
        return (f"Neuron({self.input_size}, {self.activation.name}, {self.feedback.name}, "
                f"biased={self.biased})")


def UnbiasedNeuron(inputs, activation, feedback=NO_FEEDBACK):
    return Neuron(inputs, activation, feedback, biased=False)


class Layer:
    """N identical neurons sharing one input vector."""

    def __init__(self, neuron, n):
        self.neuron = neuron
        self.size = n
        self.input_size = neuron.input_size
        self.output_size = n
        self.state_size = n * neuron.state_size
        self.min_output = neuron.min
        self.max_output = neuron.max

    def layout_row(self, offset):
        nrn = self.neuron
        return [offset, self.size, nrn.input_size, nrn.state_size, int(nrn.biased),
                nrn.activation.code, nrn.activation_begin,
                nrn.feedback.code, nrn.feedback_begin, nrn.feedback_scratch_begin]

    def feed(self, inputs, state):
        layout = np.array([self.layout_row(0)], dtype=np.int64)
        slopes = np.array([self.neuron.activation.slope])
        return network_feed(layout, slopes, state, np.asarray(inputs, dtype=np.float64))

    def __repr__(self):
        return f"Layer({self.neuron!r}, {self.size})"


# ==============================================================================
# PART 3: NETWORK LAYOUT AND NETWORKS
# ==============================================================================
class NetworkLayout:
    """
    A validated chain of layers plus the flat state schema computed from it.
    Adjacent layers must agree on sizes; this is checked here, never when feeding.
    """

    def __init__(self, *layers):
        if not layers:
            raise ValueError("NetworkLayout needs at least one layer")
        for i in range(len(layers) - 1):
            if layers[i].output_size != layers[i + 1].input_size:
                raise ValueError(
                    f"NetworkLayout: layer interfaces don't match between layer {i} "
                    f"({layers[i].output_size} outputs) and layer {i + 1} "
                    f"({layers[i + 1].input_size} inputs)")
        self.layers = tuple(layers)
        self.input_size = layers[0].input_size
        self.output_size = layers[-1].output_size

        rows, offset = [], 0
        self._offsets = []
        for layer in layers:
            self._offsets.append(offset)
            rows.append(layer.layout_row(offset))
            offset += layer.state_size
        self.state_size = offset
        self.table = np.array(rows, dtype=np.int64)
        self.slopes = np.array([layer.neuron.activation.slope for layer in layers])

        self.input_weight_mask = np.zeros(self.state_size, dtype=bool)
        self.weight_mask = np.zeros(self.state_size, dtype=bool)
        self.scratch_mask = np.zeros(self.state_size, dtype=bool)
        for i, layer in enumerate(layers):
            nrn = layer.neuron
            for j in range(layer.size):
                s = self.neuron_offset(i, j)
                self.input_weight_mask[s:s + nrn.input_weights] = True
                self.weight_mask[s:s + nrn.total_weights] = True
                self.scratch_mask[s + nrn.total_weights:s + nrn.state_size] = True

    def __len__(self):
        return len(self.layers)

    def layer_offset(self, i):
        return self._offsets[i]

    def neuron_offset(self, i, j):
        layer = self.layers[i]
        if not 0 <= j < layer.size:
            raise IndexError(f"Layer {i} has no neuron {j}")
        return self._offsets[i] + j * layer.neuron.state_size

    def feed(self, state, inputs):
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape[0] != self.input_size:
            raise ValueError(f"Network expects {self.input_size} inputs, got {x.shape[0]}")
        return network_feed(self.table, self.slopes, state, x)

    def __repr__(self):
        return f"NetworkLayout({', '.join(repr(layer) for layer in self.layers)})"


class Network:
    """One network over a flat state, either owned or borrowed from an arena."""

    def __init__(self, layout, state=None, value=None):
        self.layout = layout
        if state is None:
            state = np.zeros(layout.state_size, dtype=np.float32)
        elif state.shape[0] != layout.state_size:
            raise ValueError(f"State of length {state.shape[0]} doesn't fit "
                             f"layout of size {layout.state_size}")
        self.state = state
        if value is not None:
            self.state[:] = value

    @property
    def state_size(self):
        return self.layout.state_size

    @property
    def input_size(self):
        return self.layout.input_size

    @property
    def output_size(self):
        return self.layout.output_size

    def feed(self, inputs):
        return self.layout.feed(self.state, inputs)

    def __call__(self, *inputs):
        if len(inputs) == 1 and np.ndim(inputs[0]) == 1:
            return self.feed(inputs[0])
        return self.feed(inputs)

    def __iter__(self):
        return iter(self.state)

    def get_layer(self, i):
        layer = self.layout.layers[i]
        ofs = self.layout.layer_offset(i)
        return layer, self.state[ofs:ofs + layer.state_size]

    def get_neuron(self, i, j):
        nrn = self.layout.layers[i].neuron
        ofs = self.layout.neuron_offset(i, j)
        return nrn, self.state[ofs:ofs + nrn.state_size]

    def visit_neurons(self, visitor):
        """Calls visitor(neuron, state_slice, layer_index, node_index) for every neuron."""
        for i, layer in enumerate(self.layout.layers):
            for j in range(layer.size):
                nrn, state = self.get_neuron(i, j)
                visitor(nrn, state, i, j)

    def complexity(self):
        """Number of non-zero input weights (biases included)."""
        return int(np.count_nonzero(self.state[self.layout.input_weight_mask]))


# ==============================================================================
# PART 4: THE POPULATION-WIDE ARENA
# ==============================================================================
class AnyNetwork:
    """
    The networks of a whole population, one row per individual, selected at
    run time by topology name. Rows are `stride` floats wide; only the first
    `type_size` of them carry state.
    """

    def __init__(self, name, layout, n):
        self.name = name
        self.layout = layout
        self.type_size = layout.state_size
        self.stride = (layout.state_size + 3) // 4 * 4
        self.data = np.zeros((n, self.stride), dtype=np.float32)

    @property
    def size(self):
        return self.data.shape[0]

    def __len__(self):
        return self.data.shape[0]

    def __getitem__(self, i):
        return Network(self.layout, self.data[i, :self.type_size])

    @property
    def states(self):
        return self.data[:, :self.type_size]

    def evaluate(self, inputs):
        """Feeds row i of `inputs` to network i; returns an (N, output_size) array."""
        inputs = np.ascontiguousarray(inputs, dtype=np.float64)
        if inputs.shape != (self.size, self.layout.input_size):
            raise ValueError(f"Expected inputs of shape {(self.size, self.layout.input_size)}, "
                             f"got {inputs.shape}")
        out = np.zeros((self.size, self.layout.output_size))
        network_feed_batch(self.layout.table, self.layout.slopes, self.data, inputs, out)
        return out

    def move(self, agents, items, foragers, klepts, handlers):
        """Moves agent i by network i over the given [x, y] perception layers."""
        move_agents(agents, self.layout.table, self.layout.slopes, self.data,
                    items, foragers, klepts, handlers)

    def assign(self, src, src_idx, dst_idx):
        """Copies the full state of src[src_idx] into slot dst_idx."""
        self.data[dst_idx] = src.data[src_idx]

    def assign_from(self, src, ancestors):
        """Slot i receives a copy of src[ancestors[i]]."""
        np.take(src.data, ancestors, axis=0, out=self.data)

    def reset_scratch(self):
        self.data[:, :self.type_size][:, self.layout.scratch_mask] = 0.0

    def randomize(self, rng, sd):
        weights = self.layout.weight_mask
        self.data[:] = 0.0
        self.data[:, :self.type_size][:, weights] = rng.normal(
            0.0, sd, size=(self.size, int(weights.sum())))

    def mutate(self, param, fixed, rng):
        """
        Perturbs every evolvable weight with probability `mutation_prob`.
        Unless `fixed`, input weights are also knocked out to zero with
        probability `mutation_knockout`, which changes the effective topology.
        """
        states = self.data[:, :self.type_size]
        shape = states.shape
        if param.mutation_prob > 0.0:
            hit = (rng.random(shape) < param.mutation_prob) & self.layout.weight_mask
            states += np.where(hit, rng.normal(0.0, param.mutation_step, size=shape), 0.0).astype(np.float32)
        if not fixed and param.mutation_knockout > 0.0:
            knock = (rng.random(shape) < param.mutation_knockout) & self.layout.input_weight_mask
            states[knock] = 0.0

    def complexity(self, i):
        return int(np.count_nonzero(self.data[i, :self.type_size][self.layout.input_weight_mask]))

    def complexities(self):
        return np.count_nonzero(self.data[:, :self.type_size][:, self.layout.input_weight_mask], axis=1)

    def __repr__(self):
        return f"AnyNetwork({self.name!r}, N={self.size}, type_size={self.type_size})"


# ==============================================================================
# PART 5: THE TOPOLOGY REGISTRY
# ==============================================================================
ANN_TYPES = {
    # 1-layer, unbiased, pass-through
    'identity': lambda: NetworkLayout(
        Layer(UnbiasedNeuron(SENSORY_INPUTS, IDENTITY), MOTOR_OUTPUTS)),
    'linear': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, IDENTITY), MOTOR_OUTPUTS)),
    'sigmoid': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, sig_bipolar()), MOTOR_OUTPUTS)),
    'hidden': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, TANH_BIPOLAR), 8),
        Layer(Neuron(8, sig_bipolar()), MOTOR_OUTPUTS)),
    'recurrent': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, TANH_BIPOLAR, DIRECT_FEEDBACK), 8),
        Layer(Neuron(8, sig_bipolar()), MOTOR_OUTPUTS)),
    'varsig': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, VARSIG_BIPOLAR), 8),
        Layer(Neuron(8, VARSIG_BIPOLAR), MOTOR_OUTPUTS)),
    'deep': lambda: NetworkLayout(
        Layer(Neuron(SENSORY_INPUTS, RTLU), 8),
        Layer(Neuron(8, RTLU), 8),
        Layer(Neuron(8, sig_bipolar(2, 1)), MOTOR_OUTPUTS)),
}


def make_any_ann(name, n):
    """Builds the population arena for the topology registered under `name`."""
    try:
        factory = ANN_TYPES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown ANN type '{name}', expected one of {sorted(ANN_TYPES)}") from None
    return AnyNetwork(name, factory(), n)

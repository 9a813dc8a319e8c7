# klepto_engine/cli.py - the simulation harness

import argparse
import os

from .archive import ArchiveWriter
from .config import Param, ConfigurationError
from .observer import SimpleObserver, ArchiveObserver
from .simulation import Simulation


def parse_image(text):
    """LAYER:PATH[:CHANNEL] -> (layer, path, channel)."""
    parts = text.split(':')
    if len(parts) == 2:
        return parts[0], parts[1], 'g'
    if len(parts) == 3:
        return parts[0], parts[1], parts[2]
    raise argparse.ArgumentTypeError(f"expected LAYER:PATH[:CHANNEL], got '{text}'")


def build_parser():
    d = Param()
    parser = argparse.ArgumentParser(description="Run the forager/kleptoparasite evolution harness.")
    parser.add_argument("num_runs", type=int, nargs='?', default=1,
                        help="Number of independent runs (the seed is advanced per run)")

    land = parser.add_argument_group("landscape")
    land.add_argument("--landscape-dim", type=int, default=d.landscape_dim)
    land.add_argument("--image", dest="landscape_images", type=parse_image, action="append",
                      default=[], metavar="LAYER:PATH[:CHANNEL]")
    land.add_argument("--max-item-cap", type=float, default=d.max_item_cap)
    land.add_argument("--item-growth", type=float, default=d.item_growth)
    land.add_argument("--detection-rate", type=float, default=d.detection_rate)

    agents = parser.add_argument_group("agents")
    agents.add_argument("--n-agents", type=int, default=d.n_agents)
    agents.add_argument("--ann", default=d.ann)
    agents.add_argument("--handle-time", type=int, default=d.handle_time)
    agents.add_argument("--sprout-radius", type=int, default=d.sprout_radius)
    agents.add_argument("--flee-radius", type=int, default=d.flee_radius)
    agents.add_argument("--cmplx-penalty", type=float, default=d.cmplx_penalty)
    agents.add_argument("--prob-to-fight", type=float, default=d.prob_to_fight)
    agents.add_argument("--initiator-wins", type=float, default=d.initiator_wins)
    agents.add_argument("--init-weight-sd", type=float, default=d.init_weight_sd)
    agents.add_argument("--mutation-prob", type=float, default=d.mutation_prob)
    agents.add_argument("--mutation-step", type=float, default=d.mutation_step)
    agents.add_argument("--mutation-knockout", type=float, default=d.mutation_knockout)

    evo = parser.add_argument_group("evolution")
    evo.add_argument("--g-burnin", type=int, default=d.g_burnin)
    evo.add_argument("--g", type=int, default=d.g)
    evo.add_argument("--g-fix", type=int, default=d.g_fix)
    evo.add_argument("--t", type=int, default=d.t)
    evo.add_argument("--t-fix", type=int, default=d.t_fix)
    evo.add_argument("--init-agents-ann", default=d.init_agents_ann)
    evo.add_argument("--init-gen", type=int, default=d.init_gen)
    evo.add_argument("--seed", type=int, default=d.seed)

    out = parser.add_argument_group("output")
    out.add_argument("--archive-interval", type=int, default=d.archive_interval)
    out.add_argument("--output-dir", default=d.output_dir)
    return parser


def param_from_args(args, run_number=1):
    values = {k: v for k, v in vars(args).items() if k != 'num_runs'}
    if values['seed'] is not None:
        values['seed'] += run_number - 1
    return Param(**values)


def main(argv=None):
    args = build_parser().parse_args(argv)
    print(f"--- Preparing {args.num_runs} run(s). ---")

    for run_number in range(1, args.num_runs + 1):
        print(f"\n--- Starting Run #{run_number}/{args.num_runs} ---")
        try:
            param = param_from_args(args, run_number)
            sim = Simulation(param)
        except ConfigurationError as e:
            print(f"Error: {e}")
            return 1

        writer = ArchiveWriter(os.path.join(param.output_dir, f"run_{run_number}_ann.npz"))
        observer = SimpleObserver(ArchiveObserver(writer, param.archive_interval))
        finished = sim.run(observer)

        sim.analysis.save_csv(os.path.join(param.output_dir, f"run_{run_number}_summary.csv"))
        if not finished:
            print(f"--- Run #{run_number} stopped early ---")
            return 1
        print(f"--- Run #{run_number} Complete ---")
    return 0

import argparse
import os

import numpy as np
import pytest

from klepto_engine import cli, config as cfg
from klepto_engine.config import Param, ConfigurationError
from klepto_engine.analysis import SUMMARY_KEYS
from klepto_engine.visualisation import load_summary, plot_summary


def test_defaults_become_attributes():
    p = Param()
    assert p.n_agents == cfg.N_AGENTS
    assert p.occupancy_kernel == cfg.OCCUPANCY_KERNEL
    assert p.occupancy_kernel is not cfg.OCCUPANCY_KERNEL
    assert 'agent_x' not in p.as_dict()
    assert '_probabilities' not in p.as_dict()


def test_unknown_parameter():
    with pytest.raises(ConfigurationError):
        Param(number_of_agents=3)


@pytest.mark.parametrize("overrides", [
    dict(item_growth=1.5),
    dict(detection_rate=-0.1),
    dict(initiator_wins=2.0),
    dict(flee_radius=-1),
    dict(n_agents=0),
    dict(handle_time=0),
    dict(t=0),
    dict(g=2, g_fix=3),
    dict(archive_interval=0),
    dict(occupancy_kernel=[[1.0, 1.0], [1.0, 1.0]]),
    dict(occupancy_kernel=[[1.0, 1.0, 1.0], [1.0, 1.0]]),
])
def test_validation(overrides):
    with pytest.raises(ConfigurationError):
        Param(**overrides).validate()


def test_valid_parameters_pass():
    p = Param(g=10, g_fix=10, occupancy_kernel=[[1.0]])
    assert p.validate() is p


def test_parse_image():
    assert cli.parse_image("capacity:cap.png") == ('capacity', 'cap.png', 'g')
    assert cli.parse_image("items:it.png:r") == ('items', 'it.png', 'r')
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_image("capacity")


def test_command_line_to_param():
    args = cli.build_parser().parse_args(
        ["3", "--n-agents", "50", "--seed", "10", "--image", "capacity:cap.png",
         "--prob-to-fight", "0.5"])
    assert args.num_runs == 3
    p = cli.param_from_args(args, run_number=3)
    assert p.n_agents == 50
    assert p.seed == 12
    assert p.prob_to_fight == 0.5
    assert p.landscape_images == [('capacity', 'cap.png', 'g')]
    assert p.ann == cfg.ANN

    unseeded = cli.param_from_args(cli.build_parser().parse_args([]), run_number=2)
    assert unseeded.seed is None


def test_main_writes_summary_and_archive(tmp_path):
    out = str(tmp_path / "out")
    status = cli.main(["1", "--n-agents", "10", "--ann", "identity", "--landscape-dim", "32",
                       "--g", "2", "--t", "3", "--seed", "5", "--output-dir", out])
    assert status == 0
    assert os.path.exists(os.path.join(out, "run_1_summary.csv"))
    assert os.path.exists(os.path.join(out, "run_1_ann.npz"))

    summary = load_summary(os.path.join(out, "run_1_summary.csv"))
    assert set(summary) == set(SUMMARY_KEYS)
    assert np.array_equal(summary['generation'], [0.0, 1.0])

    png = tmp_path / "summary.png"
    plot_summary(summary, save_to=str(png))
    assert png.exists()


def test_main_reports_bad_configuration(tmp_path, capsys):
    status = cli.main(["--landscape-dim", "8", "--output-dir", str(tmp_path)])
    assert status == 1
    assert "Landscape too small" in capsys.readouterr().out

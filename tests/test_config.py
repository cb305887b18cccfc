import argparse
from pathlib import Path

import pytest

from calibration.workflow import MultiShotConfig
from utils.config import Config, DictConfigLoader

QUIET = {"logging": {"reconfigure": False}}


@pytest.fixture(autouse=True)
def _reset_config():
    Config.reset()
    yield
    Config.reset()


def test_dict_loader_resolves_interpolation():
    Config.set_loader(
        DictConfigLoader(
            {
                **QUIET,
                "checkerboard": {"square_size": 10.0},
                "pose": {"square_size": "${checkerboard.square_size}"},
            }
        )
    )
    Config.load(force_reload=True)
    assert Config.get("pose.square_size") == 10.0
    assert Config.get("checkerboard.missing", 5) == 5
    assert Config.get("checkerboard.square_size.deeper", "x") == "x"


def test_yaml_file_to_workflow_config(tmp_path):
    cfg_file = tmp_path / "app.yaml"
    cfg_file.write_text(
        "logging:\n"
        "  reconfigure: false\n"
        "paths:\n"
        f"  camera_images: {tmp_path / 'cam'}\n"
        "checkerboard:\n"
        "  square_size: 20.0\n"
        "  pattern_size: [7, 5]\n"
        "calibration:\n"
        "  distortion: [true, false, false, false, false]\n"
        "  uniqueness:\n"
        "    enabled: false\n"
        "    threshold: 2.5\n"
        "pose:\n"
        "  square_size: ${checkerboard.square_size}\n"
    )
    Config.load(cfg_file, force_reload=True)
    cfg = MultiShotConfig.from_config()
    assert cfg.images_dir == tmp_path / "cam"
    assert cfg.square_size == 20.0
    assert cfg.pattern_size == (7, 5)
    assert cfg.distortion == (True, False, False, False, False)
    assert cfg.uniqueness_enabled is False
    assert cfg.uniqueness_threshold == 2.5
    assert cfg.world_square_size == 20.0
    assert cfg.undistort_crop == "VALID"


def test_defaults_for_missing_keys():
    Config.set_loader(DictConfigLoader(QUIET))
    Config.load(force_reload=True)
    cfg = MultiShotConfig.from_config()
    assert cfg.square_size == pytest.approx(166.0 / 11)
    assert cfg.min_views == 6
    assert cfg.coverage_grid == (8, 6)


def test_cli_args_override():
    args = argparse.Namespace(
        images_dir="shots", square_size=None, pattern_size=[9, 6], command="run"
    )
    cfg = MultiShotConfig().with_args(args)
    assert cfg.images_dir == Path("shots")
    assert cfg.pattern_size == (9, 6)
    assert cfg.square_size == pytest.approx(166.0 / 11)


def test_shipped_yaml():
    from utils.config import DEFAULT_CONFIG_PATH

    Config.load(DEFAULT_CONFIG_PATH, force_reload=True)
    cfg = MultiShotConfig.from_config()
    assert cfg.square_size == pytest.approx(15.09)
    assert cfg.world_square_size == pytest.approx(15.09)
    assert cfg.untilt_crop == "FULL"
    assert cfg.align_size_squares == 13

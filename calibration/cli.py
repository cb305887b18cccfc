"""Command line entry points for multi-shot calibration."""

from __future__ import annotations

import argparse
from pathlib import Path

from utils.cli import Command, CommandDispatcher
from utils.config import DEFAULT_CONFIG_PATH, Config
from utils.logger import Logger

from .workflow import MODEL_FILE, MultiShotConfig, MultiShotWorkflow


def _workflow(args: argparse.Namespace) -> MultiShotWorkflow:
    Config.load(args.config, force_reload=True)
    cfg = MultiShotConfig.from_config().with_args(args)
    if args.no_plots:
        cfg.save_plots = False
    return MultiShotWorkflow(cfg)


def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", default=str(DEFAULT_CONFIG_PATH), help="YAML configuration file"
    )
    parser.add_argument("--results_dir", help="Output directory for model and images")
    parser.add_argument("--viz_dir", help="Output directory for plots")
    parser.add_argument("--pattern_size", type=int, nargs=2, metavar=("COLS", "ROWS"),
                        help="Inner corners of the checkerboard")
    parser.add_argument("--no_plots", action="store_true", help="Skip diagnostic plots")


def add_intrinsics_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--images_dir", help="Folder with checkerboard shots")
    parser.add_argument("--square_size", type=float, help="Checker square side length")
    parser.add_argument("--uniqueness_threshold", type=float,
                        help="Mean corner shift [px] below which a view is a duplicate")


def add_pose_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--pose_image", help="Image showing the world reference board")
    parser.add_argument("--pose_square_size", type=float,
                        help="Square side length of the world reference board")


def add_run_args(parser: argparse.ArgumentParser) -> None:
    add_intrinsics_args(parser)
    add_pose_args(parser)


def add_pose_only_args(parser: argparse.ArgumentParser) -> None:
    add_pose_args(parser)
    parser.add_argument("--model", help=f"Saved camera model (default <results_dir>/{MODEL_FILE})")


def run_full(args: argparse.Namespace) -> None:
    _workflow(args).run()


def run_intrinsics(args: argparse.Namespace) -> None:
    _workflow(args).run_intrinsics()


def run_pose(args: argparse.Namespace) -> None:
    wf = _workflow(args)
    model = Path(args.model) if args.model else wf.config.results_dir / MODEL_FILE
    wf.run_pose(model)


def create_cli() -> CommandDispatcher:
    """Build the argument dispatcher for calibration commands."""
    return CommandDispatcher(
        "Multi-shot 2D camera calibration",
        [
            Command("run", run_full, add_run_args,
                    "Intrinsics, pose and corrected images"),
            Command("intrinsics", run_intrinsics, add_intrinsics_args,
                    "Intrinsic calibration only"),
            Command("pose", run_pose, add_pose_only_args,
                    "Pose and corrections from a saved model"),
        ],
        common_arguments=add_common_args,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point used by the ``calib2d`` script."""
    logger = Logger.get_logger("calibration.cli")
    create_cli().run(argv, logger=logger)


if __name__ == "__main__":
    main()

import argparse
import logging
import os

from bpfpurge.config import PROFILE_ENV, load_profile
from bpfpurge.errors import ProfileError

_NOISY_LOGGERS = ("kubernetes", "urllib3")


def configure_logging(level_name: str, verbose: bool) -> None:
    level_name = "DEBUG" if verbose else level_name.upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if not verbose:
        # client request chatter and throttling warnings only with --verbose
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bpfpurge",
        description="Force-delete every bpfman resource (CRDs, instances, workloads, RBAC) from a cluster",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging including rate limit warnings",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument("--app", default=None, help="Application token to purge (default: bpfman)")
    parser.add_argument(
        "--profile",
        default=os.getenv(PROFILE_ENV),
        help=f"YAML file overriding the built-in purge profile (env: {PROFILE_ENV})",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Overall deadline in seconds (default: 600)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.verbose)
    logger = logging.getLogger("bpfpurge.cli")
    if args.verbose:
        logger.info("Verbose logging enabled")

    try:
        profile = load_profile(path=args.profile, app=args.app, timeout_seconds=args.timeout)
    except ProfileError as e:
        logger.error("Invalid purge profile: %s", e)
        return 1

    from .main import run_purge

    return run_purge(profile)

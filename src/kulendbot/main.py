"""
KuLendBot main entry point

This is the main entry point for the application, responsible for:
- Parsing command line arguments
- Loading configuration from the config file and the environment
- Creating the logger and the KuCoin client
- Running the lending cycle until the process is stopped
"""

from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from typing import NoReturn

from .modules import Configuration as Config
from .modules.KuCoin import KuCoin
from .modules.LendingCycle import LendingCycle, RetryPolicy
from .modules.Logger import Logger


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parses command line arguments

    Command line arguments:
        -cfg, --config: Optional configuration file path
        -v, --verbose: Log every exchange request and response
    """
    parser = argparse.ArgumentParser(
        description="KuLendBot - KuCoin USDT Lending Bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-cfg",
        "--config",
        help="Configuration file path (default: default.cfg, if present)",
        type=str,
        default=None,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        help="Verbose output mode",
        action="store_true",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> NoReturn:
    """
    KuLendBot main entrance function
    """
    args = parse_arguments(argv)
    config_location = args.config or "default.cfg"
    if args.config and not os.path.isfile(args.config):
        Logger().log_error(f"Config file '{args.config}' not found")
        sys.exit(1)

    Config.init(config_location)
    try:
        cfg = Config.get_lending_config()
    except Config.ConfigError as ex:
        Logger().log_error(f"Failed to load config: {ex}")
        sys.exit(1)
    if args.verbose:
        cfg = dataclasses.replace(cfg, api_debug_log=True)

    log = Logger(cfg.json_file, cfg.json_log_size, "KUCOIN")
    api = KuCoin(cfg, log)
    cycle = LendingCycle(
        api,
        log,
        cfg.min_daily_rate,
        cfg.reserved_amount,
        RetryPolicy.from_config(cfg),
    )

    log.log(f"Welcome to KuLendBot on {api}, {cfg}")
    try:
        cycle.run()
    except KeyboardInterrupt:
        log.log("bye")
        log.persistStatus()
        print("bye")
        sys.exit(0)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Main entry point for fanssh."""

import argparse
import sys
from functools import partial
from pathlib import Path

from loguru import logger

from .config import EXIT_CODE_MODES, ORDERS, Settings, load_config, merge_settings, settings_from_env
from .errors import FansshError
from .executor import Executor
from .groups import GroupStore
from .liveness import filter_reachable
from .presenter import RenderOptions, compute_metrics, render, streaming_metrics
from .resolver import Resolver


def setup_logger(verbose: bool = False) -> None:
    """Send diagnostics to stderr; job output goes to stdout."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if verbose else "WARNING",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a command on many hosts over ssh in parallel"
    )
    parser.add_argument("hostspec", nargs="?", help="Hosts, e.g. 'web1-4,db01,@CLUSTER:UP'")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run; {} is replaced by the hostname")
    parser.add_argument("-c", "--config", type=Path, help="YAML file with default settings")
    parser.add_argument("-g", "--groups", dest="groups_file", type=Path, help="Groups file")
    parser.add_argument("-l", "--user", help="Remote user")
    parser.add_argument("-t", "--timeout", type=float, help="Interrupt jobs still running after this many seconds")
    parser.add_argument("-o", "--output-dir", type=Path, help="Write each host's output to a file in this directory")
    parser.add_argument("--ssh", dest="ssh_binary", help="Remote client program (default: ssh)")
    parser.add_argument(
        "-K",
        "--no-strict-host-keys",
        dest="strict_host_keys",
        action="store_const",
        const=False,
        help="Accept unknown host keys",
    )
    parser.add_argument(
        "-D",
        "--keep-duplicates",
        dest="dedup",
        action="store_const",
        const=False,
        help="Run once per occurrence of a repeated host",
    )
    parser.add_argument(
        "-P",
        "--preserve-order",
        action="store_const",
        const=True,
        help="Keep hosts in the order given instead of sorting them",
    )
    parser.add_argument("-r", "--random", dest="random_count", type=int, help="Run on N randomly chosen hosts")
    parser.add_argument(
        "-n",
        "--no-wait",
        action="store_const",
        const=True,
        help="Print each result as soon as it finishes",
    )
    parser.add_argument("--order", choices=ORDERS, help="Output ordering (default: host)")
    parser.add_argument("-x", "--exit-code", dest="show_exit_code", choices=EXIT_CODE_MODES, help="When to show exit codes")
    parser.add_argument("-e", "--elapsed", dest="show_elapsed", action="store_const", const=True, help="Show elapsed time")
    parser.add_argument("-S", "--separators", action="store_const", const=True, help="Always print banner lines")
    parser.add_argument("--color", action="store_const", const=True, help="Color hostnames by result")
    parser.add_argument("--list-groups", action="store_true", help="List defined groups and exit")
    parser.add_argument("--resolve", action="store_true", help="Print the resolved hosts and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


_FLAG_SETTINGS = (
    "groups_file",
    "user",
    "timeout",
    "output_dir",
    "ssh_binary",
    "strict_host_keys",
    "dedup",
    "preserve_order",
    "random_count",
    "no_wait",
    "order",
    "show_exit_code",
    "show_elapsed",
    "separators",
    "color",
)


def _flag_layer(args: argparse.Namespace) -> dict:
    return {name: getattr(args, name) for name in _FLAG_SETTINGS}


def _list_groups(groups: GroupStore) -> int:
    for name in groups.names():
        print(f"{name}\t{len(groups.get(name).members)}")
    return 0


def _reap(executor: Executor) -> None:
    still_running = executor.reap_interrupted()
    if still_running:
        logger.debug("{} interrupted job(s) have not exited yet", still_running)


def run(settings: Settings, hosts: list[str], command: str) -> int:
    """Run the command on the hosts and print results; returns the exit code."""
    options = RenderOptions.from_settings(settings)

    if settings.no_wait:
        metrics = streaming_metrics(hosts)
        executor = Executor(settings, on_complete=lambda job: render([job], metrics, options))
        _, exit_code = executor.run(command, hosts)
        _reap(executor)
        return exit_code

    executor = Executor(settings)
    jobs, exit_code = executor.run(command, hosts)
    ordered_hosts = hosts if settings.effective_order == "host" else None
    render(jobs, compute_metrics(jobs), options, hosts=ordered_hosts)
    _reap(executor)
    return exit_code


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(args.verbose)

    try:
        layers = [load_config(args.config)] if args.config else []
        settings = merge_settings(*layers, settings_from_env(), _flag_layer(args))
        groups = GroupStore(settings.groups_file)

        if args.list_groups:
            return _list_groups(groups)

        if not args.hostspec:
            parser.error("a host spec is required")

        resolver = Resolver(
            groups,
            dedup=settings.dedup,
            preserve_order=settings.preserve_order,
            random_count=settings.random_count,
            reachable=partial(
                filter_reachable,
                probe_command=settings.probe_command,
                placeholder=settings.placeholder,
            ),
        )
        hosts = resolver.resolve(args.hostspec)

        if args.resolve:
            print("\n".join(hosts))
            return 0

        if not args.command:
            parser.error("no command given")
        return run(settings, hosts, " ".join(args.command))

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except FansshError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

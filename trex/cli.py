"""Command line entry point: serve the service or clone it under a new name."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from collections.abc import Sequence

from trex.clone import DEFAULT_DESTINATION, DEFAULT_NAME, clone_tree
from trex.environments import environment
from trex.metrics import make_metrics_app
from trex.requestlog import LOGGING_THRESHOLD
from trex.server import WSGIServer, make_healthcheck_app

_LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """The ``trex`` parser with its ``serve`` and ``clone`` sub-commands."""
    parser = argparse.ArgumentParser(
        prog="trex", description="rh-trex serves as a template for new microservices"
    )
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser(
        "serve",
        help="Serve the rh-trex",
        description="Serve the rh-trex. Any --flag=value sets the configuration flag of that name.",
    )
    serve.set_defaults(handler=_run_serve)

    clone = commands.add_parser(
        "clone", help="Clone a new TRex instance", description="Clone a new TRex instance"
    )
    clone.add_argument(
        "--name", default=DEFAULT_NAME, help="Name of the new service being provisioned"
    )
    clone.add_argument(
        "--destination",
        default=DEFAULT_DESTINATION,
        help="Target directory for the newly provisioned instance",
    )
    clone.set_defaults(handler=_run_clone)
    return parser


def _config_flags(extra: Sequence[str]) -> list[tuple[str, str]]:
    """Turn ``--name=value``, ``--name value`` and bare ``--name`` into pairs."""
    pairs: list[tuple[str, str]] = []
    tokens = iter(list(extra))
    pending: str | None = None
    for token in tokens:
        if token.startswith("-"):
            if pending is not None:
                pairs.append((pending, "true"))
                pending = None
            flag = token.lstrip("-")
            if "=" in flag:
                name, value = flag.split("=", 1)
                pairs.append((name, value))
            else:
                pending = flag
        elif pending is not None:
            pairs.append((pending, token))
            pending = None
        else:
            raise ValueError(f"unexpected argument {token!r}")
    if pending is not None:
        pairs.append((pending, "true"))
    return pairs


def _run_clone(args: argparse.Namespace, extra: Sequence[str], parser: argparse.ArgumentParser) -> int:
    if extra:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")
    try:
        clone_tree(".", args.destination, args.name)
    except OSError as exc:
        print(exc)
    return 0


def _run_serve(args: argparse.Namespace, extra: Sequence[str], parser: argparse.ArgumentParser) -> int:
    env = environment()
    try:
        env.add_flags()
        for name, value in _config_flags(extra):
            env.config.set_flag(name, value)
    except ValueError as exc:
        parser.error(str(exc))

    if env.config.verbosity >= LOGGING_THRESHOLD:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        env.initialize()
    except ValueError as exc:
        _LOG.error("Unable to initialize environment: %s", exc)
        return 1

    servers = [
        WSGIServer(make_metrics_app(), env.config.metrics.bind_address, "Metrics"),
        WSGIServer(make_healthcheck_app(), env.config.health_check.bind_address, "HealthCheck"),
    ]
    for server in servers:
        threading.Thread(target=server.start, name=server.name, daemon=True).start()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        for server in servers:
            server.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``trex`` command and return its exit status."""
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        if extra:
            parser.error(f"unrecognized arguments: {' '.join(extra)}")
        parser.print_help()
        return 0
    return handler(args, extra, parser)
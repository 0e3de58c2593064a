"""Command-line interface for license-verifier."""

from __future__ import annotations

import argparse
import dataclasses
import json
import os
import signal
import sys
import threading
from decimal import Decimal, InvalidOperation
from pathlib import Path

import structlog

from license_verifier import __version__
from license_verifier.client.acquire import LicenseIssuerClient
from license_verifier.config import LicenseConfig
from license_verifier.errors import KubeAPIError, KubeConfigError, LicenseIssuerError
from license_verifier.info import IssuerConfig, parse_features
from license_verifier.k8s.client import KubeClient
from license_verifier.k8s.clusterid import cluster_uid
from license_verifier.license.outcome import VerificationOutcome
from license_verifier.log import configure_logging
from license_verifier.verifier.failure import FailureHandler
from license_verifier.verifier.scheduler import start_periodic_verification, verify_license
from license_verifier.verifier.shutdown import EXIT_CODE, ProcessShutdown

logger = structlog.get_logger(__name__)

_DURATION_UNITS = {
    "ms": Decimal("0.001"),
    "s": Decimal(1),
    "m": Decimal(60),
    "h": Decimal(3600),
}


def _parse_duration_s(value: str) -> float:
    raw = value
    text = value.strip().lower()
    unit = "s"
    number = text
    for suffix in ("ms", "s", "m", "h"):
        if text.endswith(suffix):
            unit = suffix
            number = text[: -len(suffix)]
            break
    try:
        parsed = Decimal(number)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid duration: '{raw}' (use e.g. 30s, 15m or 1h)") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"invalid duration: '{raw}' (use e.g. 30s, 15m or 1h)")
    return float(parsed * _DURATION_UNITS[unit])


def _load_config(args: argparse.Namespace) -> LicenseConfig:
    config = LicenseConfig.from_env()
    overrides: dict = {}
    if getattr(args, "license_file", None):
        overrides["license_file"] = Path(args.license_file)
    if getattr(args, "ca_file", None):
        overrides["ca_cert"] = Path(args.ca_file).read_bytes()
    if getattr(args, "product", None):
        overrides["product_name"] = args.product
    if getattr(args, "namespace", None):
        overrides["namespace_override"] = args.namespace
    if getattr(args, "interval", None):
        overrides["interval_s"] = args.interval
    return dataclasses.replace(config, **overrides)


def _print_outcome(outcome: VerificationOutcome) -> None:
    print(json.dumps(outcome.to_dict(), indent=2, sort_keys=True), flush=True)


def cmd_verify(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except OSError as exc:
        print(f"failed to load configuration: {exc}", file=sys.stderr)
        return 2
    # On failure the handler exits the process with EXIT_CODE.
    outcome = verify_license(
        config,
        client_factory=KubeClient.in_cluster,
        handler=FailureHandler(ProcessShutdown(grace_s=config.grace_s)),
        on_outcome=_print_outcome if args.json else None,
    )
    return 0 if outcome.ok else EXIT_CODE


def cmd_watch(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except OSError as exc:
        print(f"failed to load configuration: {exc}", file=sys.stderr)
        return 2

    stop = threading.Event()
    shutdown = ProcessShutdown(stop, grace_s=config.grace_s)

    def _request_stop(signum, _frame) -> None:
        logger.info("stop_requested", signal=signal.Signals(signum).name)
        stop.set()

    previous = {sig: signal.signal(sig, _request_stop) for sig in (signal.SIGTERM, signal.SIGINT)}
    try:
        thread = start_periodic_verification(
            config,
            stop,
            client_factory=KubeClient.in_cluster,
            handler=FailureHandler(shutdown),
        )
        while thread.is_alive():
            thread.join(0.5)
            if stop.is_set():
                # Nothing else in this process needs to wind down.
                shutdown.acknowledge()
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)

    if thread.outcome is None or not thread.outcome.ok:
        reason = "thread exited without an outcome" if thread.outcome is None else thread.outcome.reason
        logger.error("license_verification_ended", reason=reason)
        return EXIT_CODE
    return 0


def _resolve_cluster(explicit: str | None) -> str:
    if explicit:
        return explicit
    return cluster_uid(KubeClient.in_cluster())


def cmd_acquire(args: argparse.Namespace) -> int:
    env_config = LicenseConfig.from_env()
    issuer = IssuerConfig(
        enforce_license=env_config.issuer.enforce_license,
        base_url=args.issuer_url or env_config.issuer.base_url,
    )
    token = args.token if args.token is not None else os.environ.get("LICENSE_VERIFIER_TOKEN", "")
    try:
        cluster = _resolve_cluster(args.cluster)
        client = LicenseIssuerClient(issuer, token, cluster)
        acquired = client.acquire_license(parse_features(args.features), timeout=args.timeout)
    except (KubeConfigError, KubeAPIError) as exc:
        print(f"failed to resolve cluster id: {exc}", file=sys.stderr)
        return 2
    except LicenseIssuerError as exc:
        print(f"failed to acquire license: {exc}", file=sys.stderr)
        return 2

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(acquired.license)
    logger.info("license_written", path=str(out), cluster=cluster)
    if acquired.contract is not None:
        print(json.dumps(acquired.contract, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def cmd_cluster_id(_args: argparse.Namespace) -> int:
    try:
        print(cluster_uid(KubeClient.in_cluster()))
    except (KubeConfigError, KubeAPIError) as exc:
        print(f"failed to resolve cluster id: {exc}", file=sys.stderr)
        return 2
    return 0


def _add_session_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--license-file",
        help="License PEM path (default: LICENSE_VERIFIER_LICENSE_FILE)",
    )
    parser.add_argument(
        "--ca-file",
        help="Trusted CA bundle (default: LICENSE_VERIFIER_LICENSE_CA or LICENSE_VERIFIER_LICENSE_CA_FILE)",
    )
    parser.add_argument("--product", help="Product the license must be issued to")
    parser.add_argument("--namespace", help="Namespace for failure events (default: pod namespace)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="license-verifier")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="info", help="Log level (debug, info, warning, error)")
    parser.add_argument("--log-format", default="console", choices=["console", "json"])
    sub = parser.add_subparsers(dest="command", required=True)

    verify = sub.add_parser("verify", help="Verify the license once; exits the process on failure")
    _add_session_args(verify)
    verify.add_argument("--json", action="store_true", help="Print the verification outcome as JSON")
    verify.set_defaults(func=cmd_verify)

    watch = sub.add_parser("watch", help="Verify the license periodically until stopped")
    _add_session_args(watch)
    watch.add_argument(
        "--interval",
        type=_parse_duration_s,
        help="Verification interval, e.g. 1h or 15m (default: LICENSE_VERIFIER_INTERVAL_S or 1h)",
    )
    watch.set_defaults(func=cmd_watch)

    acquire = sub.add_parser("acquire", help="Request a license from the issuer")
    acquire.add_argument("--issuer-url", help="Issuer base URL (default: chosen by enforcement flag)")
    acquire.add_argument("--token", help="Bearer token (default: LICENSE_VERIFIER_TOKEN)")
    acquire.add_argument("--cluster", help="Cluster UID (default: resolved in-cluster)")
    acquire.add_argument("--features", default="", help="Features, separated by commas, semicolons or spaces")
    acquire.add_argument("--timeout", type=_parse_duration_s, help="Request timeout, e.g. 30s")
    acquire.add_argument("--out", required=True, help="Where to write the license PEM")
    acquire.set_defaults(func=cmd_acquire)

    cluster = sub.add_parser("cluster-id", help="Print the cluster UID")
    cluster.set_defaults(func=cmd_cluster_id)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_format)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())

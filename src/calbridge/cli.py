import argparse
from datetime import UTC, datetime
import logging
import sys

from calbridge.authorization import AuthorizationGate
from calbridge.calendar.backends import open_store
from calbridge.config import Config, ConfigError, load_config
from calbridge.dispatcher import dispatch, select_invocation
from calbridge.errors import BridgeError
from calbridge.output import PROGRAM, write_failure, write_response

logger = logging.getLogger("calbridge")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM,
        description="Read, create, update and delete calendar events as JSON.",
    )
    parser.add_argument("--start", help="Inclusive RFC-3339 start (e.g. 2025-05-07T00:00:00Z).")
    parser.add_argument("--end", help="Exclusive RFC-3339 end (e.g. 2025-05-08T00:00:00Z).")
    parser.add_argument(
        "--create",
        action="store_true",
        help="Also create a demo event in the default calendar (read mode).",
    )
    parser.add_argument(
        "--create-json",
        action="store_true",
        help="Read a new-event JSON object from stdin and create it.",
    )
    parser.add_argument(
        "--update-json",
        action="store_true",
        help="Read an event-update JSON object from stdin and apply it.",
    )
    parser.add_argument("--delete-id", help="Remove the event with this id.")
    parser.add_argument(
        "--json-errors",
        action="store_true",
        help="Write failures to stderr as a JSON object.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr.")
    return parser


def _configure_logging(level: int) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(f"{PROGRAM}: %(levelname)s %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def _now(cfg: Config) -> datetime:
    return cfg.now_override or datetime.now(UTC)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config()
    except ConfigError as exc:
        write_failure(exc, sys.stderr, as_json=args.json_errors)
        return exc.exit_code
    _configure_logging(logging.DEBUG if args.verbose else cfg.log_level)

    try:
        invocation = select_invocation(args, sys.stdin)
        store = open_store(cfg)
        gate = AuthorizationGate(
            store.request_access,
            is_authorized=store.is_authorized,
            timeout=cfg.auth_timeout_seconds,
        )
        payload = dispatch(invocation, store=store, gate=gate, now=_now(cfg))
    except BridgeError as exc:
        logger.debug("%s: %s", exc.kind, exc.message)
        write_failure(exc, sys.stderr, as_json=args.json_errors)
        return exc.exit_code

    write_response(payload, sys.stdout)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

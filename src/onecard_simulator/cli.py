from __future__ import annotations

import argparse
import sys
from pathlib import Path

from onecard_simulator.config import ConfigError
from onecard_simulator.credentials import resolve_secret
from onecard_simulator.dotenv import load_dotenv
from onecard_simulator.logger import print_structured_stdout
from onecard_simulator.models import CAP_MODES, STRATEGIES, OutboundResult
from onecard_simulator.paths import resolve_config_path
from onecard_simulator.service import MailingSecrets, run_simulation, run_subscribe, run_support
from onecard_simulator.session import SessionError
from onecard_simulator.split import SplitInputError


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    config_path: Path | None = resolve_config_path(args.config, Path.cwd())
    if not config_path.exists():
        if args.config is not None:
            parser.error(f"Config not found at '{config_path}'.")
        config_path = None

    try:
        if args.command == "split":
            return _run_split(args, config_path)
        secrets = _resolve_mailing_secrets(args)
        if args.command == "subscribe":
            result = run_subscribe(
                config_path=config_path,
                email=args.email,
                secrets=secrets,
                log_path=args.log,
                log_to_stdout=args.stdout_log,
            )
        else:
            result = run_support(
                config_path=config_path,
                email=args.email,
                message=args.message,
                secrets=secrets,
                log_path=args.log,
                log_to_stdout=args.stdout_log,
            )
    except (ConfigError, SessionError, SplitInputError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return _report_outbound(result)


def _run_split(args: argparse.Namespace, config_path: Path | None) -> int:
    outcome = run_simulation(
        config_path=config_path,
        total=args.total,
        strategy=args.strategy,
        cap_mode=args.cap_mode,
        apply=args.apply,
        log_path=args.log,
        log_to_stdout=args.stdout_log,
    )
    transaction = outcome.transaction
    print_structured_stdout(
        {
            "event_name": "cli_split_result",
            "status": outcome.status,
            "transaction_id": transaction.id,
            "total": f"{transaction.total:.2f}",
            "strategy": transaction.strategy,
            "cap_mode": transaction.cap_mode,
            "applied": transaction.applied,
            "lines": {key: f"{value:.2f}" for key, value in transaction.lines.items()},
            "remaining": f"{transaction.remaining:.2f}",
            "balances": {source.id: f"{source.balance:.2f}" for source in outcome.sources},
        }
    )
    print(outcome.confirmation)
    return 0


def _report_outbound(result: OutboundResult) -> int:
    if result.ok:
        print(result.message)
        return 0
    print(f"Error ({result.error_kind}): {result.message}", file=sys.stderr)
    return 1


def _resolve_mailing_secrets(args: argparse.Namespace) -> MailingSecrets:
    dotenv_values = load_dotenv(Path.cwd() / ".env")
    return MailingSecrets(
        mailerlite_api_key=resolve_secret(args.mailerlite_api_key, "MAILERLITE_API_KEY", dotenv_values),
        mailerlite_group_id=resolve_secret(None, "MAILERLITE_GROUP_ID", dotenv_values),
        resend_api_key=resolve_secret(args.resend_api_key, "RESEND_API_KEY", dotenv_values),
        support_from_email=resolve_secret(None, "SUPPORT_FROM_EMAIL", dotenv_values),
        support_to_email=resolve_secret(None, "SUPPORT_TO_EMAIL", dotenv_values),
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="onecard-sim",
        description="Simulate splitting a purchase across mock funding cards and run One Card contact actions.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config. Default: auto-detect simulator.yml or simulator.yaml in working directory.",
    )
    parser.add_argument("--log", type=Path, default=None, help="Append-only JSON-lines log path. Overrides app.log_path.")
    parser.add_argument("--stdout-log", action="store_true", help="Print log events to stdout instead of the log file.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    split = subparsers.add_parser("split", help="Compute a split for the configured cards and record it.")
    split.add_argument("--total", type=str, default=None, help="Purchase total. Default: simulator.merchant_total.")
    split.add_argument("--strategy", choices=STRATEGIES, default=None, help="Allocation strategy.")
    split.add_argument("--cap-mode", choices=CAP_MODES, default=None, help="Cap allocations by card balance or not.")
    split.add_argument("--apply", action="store_true", help="Deduct the split from the mock card balances.")

    subscribe = subparsers.add_parser("subscribe", help="Add an email address to the mailing list.")
    subscribe.add_argument("email", type=str)
    _add_provider_key_arguments(subscribe)

    support = subparsers.add_parser("support", help="Forward a support message to the team inbox.")
    support.add_argument("email", type=str)
    support.add_argument("message", type=str)
    _add_provider_key_arguments(support)
    return parser


def _add_provider_key_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mailerlite-api-key", type=str, default=None, help="MailerLite API key. Optional if MAILERLITE_API_KEY is set."
    )
    parser.add_argument(
        "--resend-api-key", type=str, default=None, help="Resend API key. Optional if RESEND_API_KEY is set."
    )


if __name__ == "__main__":
    raise SystemExit(main())

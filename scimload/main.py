from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .config import ConfigError, HarnessConfig, apply_overrides, load_config, save_config
from .executor import HarnessExecutor, RunReport
from .ledger import LedgerError
from .stats import format_stats

LOGGER = logging.getLogger("scimload")

DEFAULT_CONFIG_PATH = "config.json"


def _env_flag(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SCIM2 multi-tenant user provisioning load harness")
    parser.add_argument(
        "--config",
        default=os.environ.get("SCIMLOAD_CONFIG"),
        help="Path to a JSON configuration file",
    )
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Write the default configuration to --config (or config.json) and exit",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Retry only the users recorded in the failed users ledger",
    )

    server = parser.add_argument_group("server")
    server.add_argument("--host", default=os.environ.get("SCIMLOAD_HOST"))
    server.add_argument("--port", type=int, default=os.environ.get("SCIMLOAD_PORT"))
    server.add_argument("--username", default=os.environ.get("SCIMLOAD_ADMIN_USERNAME"), help="Admin username")
    server.add_argument("--password", default=os.environ.get("SCIMLOAD_ADMIN_PASSWORD"), help="Admin password")

    payload = parser.add_argument_group("payload")
    payload.add_argument("--username-prefix", default=os.environ.get("SCIMLOAD_USERNAME_PREFIX"))
    payload.add_argument("--user-password", default=os.environ.get("SCIMLOAD_USER_PASSWORD"))
    payload.add_argument("--role-name", default=os.environ.get("SCIMLOAD_ROLE_NAME"))
    payload.add_argument("--tenant-prefix", default=os.environ.get("SCIMLOAD_TENANT_PREFIX"))

    execution = parser.add_argument_group("execution")
    execution.add_argument(
        "--concurrency",
        type=int,
        default=os.environ.get("SCIMLOAD_CONCURRENCY"),
        help="Number of concurrent worker threads",
    )
    execution.add_argument(
        "--user-count",
        type=int,
        default=os.environ.get("SCIMLOAD_USER_COUNT"),
        help="Users to create in every tenant",
    )
    execution.add_argument("--tenant-count", type=int, default=os.environ.get("SCIMLOAD_TENANT_COUNT"))
    execution.add_argument("--user-start-number", type=int, default=os.environ.get("SCIMLOAD_USER_START"))
    execution.add_argument("--tenant-start-number", type=int, default=os.environ.get("SCIMLOAD_TENANT_START"))
    execution.add_argument(
        "--ramp-up-period",
        type=float,
        default=os.environ.get("SCIMLOAD_RAMP_UP_SECONDS"),
        help="Seconds over which worker launches are spread",
    )
    execution.add_argument(
        "--request-timeout",
        type=float,
        default=os.environ.get("SCIMLOAD_REQUEST_TIMEOUT_SECONDS"),
        help="Per-request timeout in seconds; a timeout counts as a failure",
    )
    execution.add_argument("--scim-id-csv-path", default=os.environ.get("SCIMLOAD_SCIM_ID_CSV"))
    execution.add_argument("--failed-users-csv-path", default=os.environ.get("SCIMLOAD_FAILED_USERS_CSV"))
    execution.add_argument(
        "--record-scim-ids",
        action="store_true",
        default=_env_flag("SCIMLOAD_RECORD_SCIM_IDS"),
        help="Write the SCIM id of every created user to --scim-id-csv-path",
    )
    execution.add_argument(
        "--no-dedupe",
        dest="dedupe_retries",
        action="store_false",
        default=None,
        help="Replay every ledger row, even repeated failures of the same user",
    )

    parser.add_argument(
        "--output-dir",
        default=os.environ.get("SCIMLOAD_OUTPUT_DIR"),
        help="Directory for the outcomes CSV, latency summary and charts",
    )
    parser.add_argument(
        "--charts",
        action="store_true",
        help="Render outcome charts into --output-dir",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SCIMLOAD_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    parser.add_argument(
        "--log-path",
        default=os.environ.get("SCIMLOAD_LOG_PATH"),
        help="Optional file that receives a copy of the log",
    )
    return parser.parse_args(argv)


def setup_logging(level: str, log_path: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not log_path:
        return
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(threadName)s %(message)s"))
    logging.getLogger().addHandler(handler)


def build_config(args: argparse.Namespace) -> HarnessConfig:
    config = load_config(args.config)
    config = apply_overrides(
        config,
        server={
            "host": args.host,
            "port": args.port,
            "username": args.username,
            "password": args.password,
        },
        payload={
            "username_prefix": args.username_prefix,
            "user_password": args.user_password,
            "role_name": args.role_name,
            "tenant_prefix": args.tenant_prefix,
        },
        execution={
            "thread_count": args.concurrency,
            "user_count": args.user_count,
            "tenant_count": args.tenant_count,
            "user_start_number": args.user_start_number,
            "tenant_start_number": args.tenant_start_number,
            "ramp_up_period_s": args.ramp_up_period,
            "request_timeout_s": args.request_timeout,
            "scim_id_csv_path": args.scim_id_csv_path,
            "failed_users_csv_path": args.failed_users_csv_path,
            "record_scim_ids": args.record_scim_ids,
            "dedupe_retries": args.dedupe_retries,
        },
    )
    return config.validate()


def format_config_summary(config: HarnessConfig) -> str:
    execution = config.execution
    lines = [
        "=== SCIM2 Test Configuration ===",
        f"Server: {config.server_url}",
        f"Username: {config.server.username}",
        f"Tenant Prefix: {config.payload.tenant_prefix}",
        f"Role Name: {config.payload.role_name}",
        f"Username Prefix: {config.payload.username_prefix}",
        f"Threads: {execution.thread_count}",
        f"Users: {execution.user_count} (from {execution.user_start_number})",
        f"Tenants: {execution.tenant_count} (from {execution.tenant_start_number})",
        f"Ramp-up Period: {execution.ramp_up_period_s:g} seconds",
        f"Request Timeout: {execution.request_timeout_s:g} seconds",
        f"Failed Users Ledger: {execution.failed_users_csv_path}",
        f"SCIM ID Output: {execution.scim_id_csv_path if execution.record_scim_ids else '<disabled>'}",
        "================================",
    ]
    return "\n".join(lines)


def write_artefacts(report: RunReport, output_dir: Path, charts: bool) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    outcomes_path = output_dir / f"{report.mode}_outcomes.csv"
    report.outcomes.to_csv(outcomes_path, index=False)
    LOGGER.info("Saved %d outcome(s) to %s", len(report.outcomes), outcomes_path)

    # matplotlib is only loaded when artefacts are requested.
    from .charts import latency_summary, render_outcome_charts

    summary_path = output_dir / f"{report.mode}_latency_summary.csv"
    latency_summary(report.outcomes).to_csv(summary_path, index=False)
    LOGGER.info("Saved latency summary to %s", summary_path)

    if charts:
        render_outcome_charts(report.outcomes, output_dir)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_path)

    if args.generate_config:
        path = args.config or DEFAULT_CONFIG_PATH
        try:
            save_config(HarnessConfig(), path)
        except ConfigError:
            LOGGER.exception("failed to generate config file")
            return 1
        print(f"Default configuration saved to: {path}")
        print("You can modify this file and run with --config")
        return 0

    try:
        config = build_config(args)
    except ConfigError:
        LOGGER.exception("failed to load configuration")
        return 1

    print(format_config_summary(config))
    print()

    executor = HarnessExecutor(config)
    try:
        if args.retry_failed:
            report = executor.execute_retry()
        else:
            report = executor.execute()
    except LedgerError:
        LOGGER.exception("%s run aborted before workers started", "retry" if args.retry_failed else "test")
        return 1
    except KeyboardInterrupt:
        print("stopping harness", file=sys.stderr)
        return 1

    if report.spawned_workers:
        print()
        print(format_stats(report.stats))
        print(f"Completed in {report.duration_s:.2f}s")

    if args.output_dir:
        write_artefacts(report, Path(args.output_dir), charts=args.charts)

    print("Test execution completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())

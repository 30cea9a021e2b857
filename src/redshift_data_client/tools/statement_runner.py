from __future__ import annotations

"""
StatementRunner
---------------

Command-line smoke test for the Redshift Data API client:
1) submit one statement (or several as a batch),
2) wait for completion,
3) print the result set (single statement) or the sub-statement ids (batch).

Usage (from repo root):
    python -m redshift_data_client.tools.statement_runner --sql "select 1"
    python -m redshift_data_client.tools.statement_runner \
        --sql "select * from sales where id = :id" --param id=5

Several --sql flags submit a batch:
    python -m redshift_data_client.tools.statement_runner --sql "create temp table t(a int)" --sql "insert into t values (1)"

Connection details come from config/<APP_ENV>.yaml and the environment
(REDSHIFT_DATABASE, REDSHIFT_CLUSTER_ID, REDSHIFT_WORKGROUP_NAME, ...); the
flags below override them.
"""

import argparse
import dataclasses
from typing import Dict, List, Optional

from redshift_data_client.config.settings import Settings, load_settings
from redshift_data_client.db.client import RedshiftDataClient
from redshift_data_client.exceptions.errors import RedshiftDataError
from redshift_data_client.logging.logger import get_logger, init_logging

log = get_logger("tools.statement_runner")


def parse_params(pairs: Optional[List[str]]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"--param expects name=value, got {pair!r}")
        params[name.strip()] = value
    return params


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "aws_region": args.region,
        "redshift_database": args.database,
        "redshift_cluster_id": args.cluster_id,
        "redshift_workgroup_name": args.workgroup,
        "redshift_db_user": args.db_user,
        "redshift_secret_arn": args.secret_arn,
        "poll_timeout": args.timeout,
        "poll_interval": args.poll_interval,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    # A target given on the command line replaces the configured one entirely.
    if args.cluster_id:
        changes.setdefault("redshift_workgroup_name", "")
    if args.workgroup:
        changes.setdefault("redshift_cluster_id", "")
        changes.setdefault("redshift_db_user", "")
    return dataclasses.replace(settings, **changes)


def run(client: RedshiftDataClient, sqls: List[str], params: Dict[str, str], max_rows: int) -> int:
    if len(sqls) > 1:
        if params:
            print("❌ --param is only supported with a single --sql")
            return 2
        ids = client.batch_execute_statement(sqls).result()
        print(f"✅ Batch FINISHED ({len(ids)} statements)")
        for sub_id in ids:
            print(f"   {sub_id}")
        return 0

    statement_id = client.execute_statement(sqls[0], params or None).result()
    print(f"Submitted statement {statement_id}")
    description = client.wait_for_statement(statement_id).result()
    print(f"✅ Statement {description.status.value}")

    if not description.has_result_set:
        print(f"   rows affected: {description.result_rows}")
        return 0

    df = client.get_statement_result(statement_id).result().to_dataframe()
    print(f"   rows: {len(df)}")
    print(df.head(max_rows).to_string(index=False))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run SQL through the Amazon Redshift Data API and print the result.")
    parser.add_argument("--sql", action="append", required=True, help="SQL statement; repeat to submit a batch.")
    parser.add_argument("--param", action="append", default=None, help="Named bind parameter name=value (single statement only).")
    parser.add_argument("--config", default=None, help="Path to a settings YAML (defaults to config/<APP_ENV>.yaml).")
    parser.add_argument("--region", default=None, help="AWS region (defaults from config/AWS_REGION).")
    parser.add_argument("--database", default=None, help="Database name (defaults from config/REDSHIFT_DATABASE).")
    parser.add_argument("--cluster-id", dest="cluster_id", default=None, help="Provisioned cluster identifier.")
    parser.add_argument("--workgroup", default=None, help="Serverless workgroup name.")
    parser.add_argument("--db-user", dest="db_user", default=None, help="Database user for temporary credentials.")
    parser.add_argument("--secret-arn", dest="secret_arn", default=None, help="Secrets Manager ARN holding database credentials.")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for completion.")
    parser.add_argument("--poll-interval", dest="poll_interval", type=float, default=None, help="Seconds between status checks.")
    parser.add_argument("--max-rows", dest="max_rows", type=int, default=50, help="Rows to print.")
    args = parser.parse_args(argv)

    try:
        params = parse_params(args.param)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    try:
        settings = _apply_overrides(load_settings(args.config), args)
        init_logging(settings.log_level, settings.log_file or None)
        with RedshiftDataClient.from_settings(settings) as client:
            return run(client, args.sql, params, args.max_rows)
    except RedshiftDataError as e:
        log.error("Statement run failed", extra={"error": str(e), "error_type": type(e).__name__})
        print("❌ FAILED")
        print(f"   {type(e).__name__}: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

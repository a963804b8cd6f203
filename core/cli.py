"""Org Intelligence Dashboard data pipeline commands.

Usage:
    python -m core.cli snapshot save --date 2025-01-31
    python -m core.cli snapshot compare 2024-12-31 2025-01-31 --save
    python -m core.cli ingest-usage
    python -m core.cli hierarchy
    python -m core.cli enrich
    python -m core.cli collect slack
    python -m core.cli analyze && python -m core.cli aggregate
    python -m core.cli benchmarks --force
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from core.benchmarks import refresh_benchmarks
from core.collect_confluence import ConfluenceAPIError, collect_confluence
from core.collect_slack import SlackCollectorError, collect_slack
from core.collect_surveys import collect_surveys
from core.config import (
    DashboardPaths,
    get_paths,
    load_anthropic_settings,
    load_confluence_settings,
    load_environment,
    load_slack_settings,
)
from core.data import read_json, write_json
from core.enrichment import enrich_org_chart
from core.hierarchy import attach_aliases, build_employee_directory, department_headcounts, load_directory_config
from core.llm import ClaudeClient, LLMError
from core.orgchart import (
    OrgChartError,
    assert_valid,
    load_org_chart,
    recompute_counts,
    save_org_chart,
    validate_org_chart,
)
from core.sentiment_aggregate import aggregate_sentiment
from core.sentiment_analysis import SentimentAnalyzer, analyze_sources, load_sources
from core.sentiment_multitool import run_multi_tool_sentiment
from core.snapshots import (
    SnapshotError,
    compare_snapshots,
    format_comparison_report,
    latest_snapshot,
    list_snapshots,
    save_snapshot,
    write_comparison,
)
from core.usage import UsageDataError, ingest_usage


_logger = logging.getLogger(__name__)

COMMAND_ERRORS = (
    OrgChartError,
    SnapshotError,
    UsageDataError,
    LLMError,
    SlackCollectorError,
    ConfluenceAPIError,
    FileNotFoundError,
)


# =====================================================================
# Org chart
# =====================================================================

def _cmd_snapshot(args: argparse.Namespace, paths: DashboardPaths) -> int:
    if args.action == "save":
        save_snapshot(paths, args.date or date.today().isoformat())
    elif args.action == "list":
        snapshots = list_snapshots(paths)
        if not snapshots:
            print("No snapshots found.")
        for snap in snapshots:
            total = snap["totalEmployees"] if snap["totalEmployees"] is not None else "?"
            print(f"  {snap['date']}  {total:>5} employees  {snap['sizeKB']:>8} KB  {snap['file']}")
    elif args.action == "latest":
        snap = latest_snapshot(paths)
        if snap is None:
            print("No snapshots found.")
            return 1
        print(f"Latest snapshot: {snap['date']} ({snap['totalEmployees']} employees)")
    elif args.action == "compare":
        report = compare_snapshots(paths, args.old, args.new)
        print(format_comparison_report(report))
        if args.save:
            write_comparison(paths, report)
    return 0


def _cmd_validate(args: argparse.Namespace, paths: DashboardPaths) -> int:
    chart = load_org_chart(paths.org_chart)
    if args.fix:
        save_org_chart(recompute_counts(chart), paths.org_chart)
        _logger.info("Recomputed team counts in %s", paths.org_chart.name)
    violations = validate_org_chart(chart, check_fte=not args.skip_fte)
    if not violations:
        _logger.info("Org chart is consistent (%s)", paths.org_chart.name)
        return 0
    for v in violations:
        print(f"  - {v}")
    _logger.error("%d violation(s) found", len(violations))
    return 1


def _cmd_enrich(args: argparse.Namespace, paths: DashboardPaths) -> int:
    ai_tools = read_json(paths.ai_tools_data)
    if ai_tools is None:
        raise FileNotFoundError(f"AI tools data not found: {paths.ai_tools_data}; run ingest-usage first")
    chart = enrich_org_chart(recompute_counts(load_org_chart(paths.org_chart)), ai_tools)
    assert_valid(chart)
    if args.dry_run:
        _logger.info("Dry run: %s not written", paths.org_chart)
        return 0
    save_org_chart(chart, paths.org_chart)
    _logger.info("Enriched org chart written to %s", paths.org_chart)
    return 0


def _cmd_hierarchy(args: argparse.Namespace, paths: DashboardPaths) -> int:
    config = load_directory_config(paths.department_map)
    directory = build_employee_directory(load_org_chart(paths.org_chart), config)
    attach_aliases(directory, config.email_aliases)
    write_json(paths.hierarchy, directory)
    for dept, count in sorted(department_headcounts(directory).items(), key=lambda kv: -kv[1]):
        print(f"  {dept:<30} {count:>5}")
    _logger.info("Wrote %d directory records to %s", len(directory), paths.hierarchy)
    return 0


# =====================================================================
# Usage + benchmarks
# =====================================================================

def _anthropic_ready(job: str) -> bool:
    if load_anthropic_settings().enabled:
        return True
    _logger.warning("ANTHROPIC_API_KEY not set; skipping %s", job)
    return False


def _cmd_ingest_usage(args: argparse.Namespace, paths: DashboardPaths) -> int:
    hierarchy = read_json(paths.hierarchy)
    if hierarchy is None:
        _logger.warning("hierarchy.json not found; departments will be Unknown")
    ingest_usage(paths.usage_dir, paths.ai_tools_data, hierarchy=hierarchy)
    return 0


def _cmd_benchmarks(args: argparse.Namespace, paths: DashboardPaths) -> int:
    if not _anthropic_ready("benchmark refresh"):
        return 0
    refresh_benchmarks(paths.roi_config, force=args.force)
    return 0


# =====================================================================
# Sentiment
# =====================================================================

def _cmd_collect(args: argparse.Namespace, paths: DashboardPaths) -> int:
    sources = ["slack", "confluence", "surveys"] if args.source == "all" else [args.source]
    out = paths.sentiment_dir
    for source in sources:
        if source == "slack":
            collect_slack(load_slack_settings(), out, hierarchy_path=paths.hierarchy)
        elif source == "confluence":
            collect_confluence(load_confluence_settings(), out, hierarchy_path=paths.hierarchy)
        elif source == "surveys":
            collect_surveys(paths.survey_dir, out, hierarchy_path=paths.hierarchy)
    return 0


def _cmd_analyze(args: argparse.Namespace, paths: DashboardPaths) -> int:
    if not _anthropic_ready("sentiment analysis"):
        return 0
    target = analyze_sources(paths.sentiment_dir, SentimentAnalyzer(ClaudeClient()))
    if target is None:
        _logger.warning("No feedback found in %s; run collect first", paths.sentiment_dir)
        return 1
    return 0


def _cmd_aggregate(args: argparse.Namespace, paths: DashboardPaths) -> int:
    return 0 if aggregate_sentiment(paths.sentiment_dir, paths.perceived_value) else 1


def _cmd_multi_tool(args: argparse.Namespace, paths: DashboardPaths) -> int:
    if not _anthropic_ready("multi-tool sentiment"):
        return 0
    if args.input:
        with open(args.input, encoding="utf-8") as fh:
            raw = json.load(fh)
        messages = raw.get("messages", []) if isinstance(raw, dict) else raw
    else:
        messages, _ = load_sources(paths.sentiment_dir)
    if not messages:
        _logger.warning("No messages to analyze")
        return 1
    _logger.info("Extracting per-tool sentiment from %d messages", len(messages))
    run_multi_tool_sentiment(ClaudeClient(), messages, paths.tool_sentiment)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="core.cli", description="Org Intelligence Dashboard data pipeline")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    snap = sub.add_parser("snapshot", help="Save, list and compare org chart snapshots.")
    snap_sub = snap.add_subparsers(dest="action", required=True)
    save = snap_sub.add_parser("save", help="Copy the current org chart to a dated snapshot.")
    save.add_argument("--date", default=None, help="Snapshot date YYYY-MM-DD (default: today).")
    snap_sub.add_parser("list", help="List saved snapshots.")
    snap_sub.add_parser("latest", help="Show the most recent snapshot.")
    cmp = snap_sub.add_parser("compare", help="Compare two snapshots.")
    cmp.add_argument("old")
    cmp.add_argument("new")
    cmp.add_argument("--save", action="store_true", help="Write the comparison JSON next to the snapshots.")
    snap.set_defaults(func=_cmd_snapshot)

    val = sub.add_parser("validate", help="Check org chart counts and FTE rollups.")
    val.add_argument("--skip-fte", action="store_true", help="Only check structure and counts.")
    val.add_argument(
        "--fix", action="store_true", help="Recompute directReports/totalTeamSize and save before checking."
    )
    val.set_defaults(func=_cmd_validate)

    enrich = sub.add_parser("enrich", help="Attach agentic FTE to every org chart node.")
    enrich.add_argument("--dry-run", action="store_true")
    enrich.set_defaults(func=_cmd_enrich)

    sub.add_parser("hierarchy", help="Write the employee directory (hierarchy.json).").set_defaults(func=_cmd_hierarchy)
    sub.add_parser("ingest-usage", help="Build ai-tools-data.json from usage exports.").set_defaults(
        func=_cmd_ingest_usage
    )

    bench = sub.add_parser("benchmarks", help="Refresh cached industry benchmarks.")
    bench.add_argument("--force", action="store_true", help="Ignore the cache expiry.")
    bench.set_defaults(func=_cmd_benchmarks)

    collect = sub.add_parser("collect", help="Collect feedback for sentiment analysis.")
    collect.add_argument("source", choices=["slack", "confluence", "surveys", "all"])
    collect.set_defaults(func=_cmd_collect)

    sub.add_parser("analyze", help="Classify collected feedback.").set_defaults(func=_cmd_analyze)
    sub.add_parser("aggregate", help="Write perceived-value.json.").set_defaults(func=_cmd_aggregate)

    multi = sub.add_parser("multi-tool", help="Extract per-tool sentiment from each message.")
    multi.add_argument("--input", default=None, help="JSON file with a messages list (default: collected sources).")
    multi.set_defaults(func=_cmd_multi_tool)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s  %(message)s"
    )
    load_environment()
    paths = get_paths()
    try:
        return args.func(args, paths)
    except COMMAND_ERRORS as exc:
        _logger.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

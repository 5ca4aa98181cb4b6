#!/usr/bin/env python
"""
Revision risk report for one organization.

Analyzes every Active/InReview document of the tenant and prints a summary plus
the documents that need revision, highest risk first.

Usage:
    python scripts/revision_report.py ORG_ID
    python scripts/revision_report.py ORG_ID --json

Environment:
    DATABASE_URL, RISK_WARNING_DAYS, RISK_REQUIRED_DAYS,
    RISK_MIN_CONFORMITY_SCORE, RISK_MAX_NON_CONFORMITIES
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tqms.config import load_config  # noqa: E402
from app.tqms.modules.revision_risk.service import (  # noqa: E402
    RiskThresholds,
    analyze_organization,
    summarize_analyses,
)
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402


def build_report(org_id: str, *, database_url: str | None = None) -> dict:
    config = load_config()
    thresholds = RiskThresholds.from_config(config)
    with script_session(resolve_database_url(database_url or config["DATABASE_URL"])) as s:
        analyses = analyze_organization(s, org_id, thresholds=thresholds)
        return summarize_analyses(analyses)


def print_report(org_id: str, report: dict) -> None:
    print("\nREVISION RISK REPORT")
    print("=" * 60)
    print(f"Organization: {org_id}")
    print(f"  Documents analyzed:     {report['total']}")
    print(f"  Need revision:          {report['needs_revision']}")
    for level, count in report["by_risk"].items():
        print(f"  Risk {level:<8}          {count}")

    docs = report["documents_needing_revision"]
    if not docs:
        print("\nNo documents need immediate revision.")
    for i, d in enumerate(docs, start=1):
        print(f"\n{i}. {d['title']} ({d['document_id']})")
        print(f"   Risk: {d['risk_level'].upper()}  Status: {d['status']}")
        print(f"   Days since last revision: {d['days_since_revision']}")
        if d["conformity_score"] is not None:
            print(f"   Conformity score: {d['conformity_score']:g}%")
        print("   Reasons:")
        for reason in d["reasons"]:
            print(f"     - {reason}")
        print("   Recommendations:")
        for rec in d["recommendations"]:
            print(f"     -> {rec}")
    print("=" * 60)


def main() -> int:
    parser = argparse.ArgumentParser(description="Print the revision risk report for an organization.")
    parser.add_argument("org_id", help="Tenant / organization id")
    parser.add_argument("--json", action="store_true", help="Emit the report as JSON")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    args = parser.parse_args()

    load_dotenv()

    report = build_report(args.org_id, database_url=args.database_url)
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(args.org_id, report)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Replay historical login logs through the detector and report on them."""

from __future__ import annotations

import argparse
import csv
import json
import logging
import os
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from .geo import MaxMindGeoResolver, build_geo_resolver
from .models import RISK_LEVELS, LoginAttempt, RiskAssessment
from .risk_engine import SuspiciousLoginDetector
from .schemas import LoginAttemptPayload, assessment_to_wire

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "userId",
    "timestamp",
    "overallRisk",
    "riskLevel",
    "locationChange",
    "impossibleTravel",
    "bruteForce",
    "unusualTime",
]
TRUE_VALUES = {"true", "1"}


class LogFormatError(ValueError):
    """A login log could not be read or contains malformed rows."""


@dataclass(slots=True)
class AnalysisReport:
    total_logins: int
    suspicious_logins: int
    users_analyzed: int
    high_risk_users: List[str]
    report_generated_at: datetime
    detailed_results: List[RiskAssessment] = field(default_factory=list)

    def risk_breakdown(self) -> Dict[str, int]:
        breakdown = {level: 0 for level in RISK_LEVELS}
        for result in self.detailed_results:
            breakdown[result.risk_level] += 1
        return breakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalLogins": self.total_logins,
            "suspiciousLogins": self.suspicious_logins,
            "usersAnalyzed": self.users_analyzed,
            "highRiskUsers": list(self.high_risk_users),
            "reportGeneratedAt": self.report_generated_at.isoformat(),
            "riskBreakdown": self.risk_breakdown(),
            "detailedResults": [assessment_to_wire(result) for result in self.detailed_results],
        }


def _parse_success(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


def parse_login_record(record: Mapping[str, Any], line: Optional[int] = None) -> LoginAttempt:
    data = {key: value for key, value in record.items() if value not in (None, "")}
    data["success"] = _parse_success(record.get("success"))
    where = f" (row {line})" if line is not None else ""
    if "timestamp" not in data:
        raise LogFormatError(f"Invalid login record{where}: missing timestamp")
    try:
        return LoginAttemptPayload.model_validate(data).to_attempt()
    except ValidationError as exc:
        raise LogFormatError(f"Invalid login record{where}: {exc}") from exc


class LogAnalyzer:
    def __init__(self, detector: SuspiciousLoginDetector | None = None):
        self.detector = detector or SuspiciousLoginDetector()

    def analyze_json(self, path: str | Path) -> AnalysisReport:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LogFormatError(f"Failed to read JSON file {path}: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("logins", [])
        if not isinstance(data, list):
            raise LogFormatError(f"Expected a list of logins or an object with 'logins' in {path}")
        return self.analyze_records(data)

    def analyze_csv(self, path: str | Path) -> AnalysisReport:
        try:
            with Path(path).open(newline="", encoding="utf-8") as handle:
                rows = [
                    {key.strip(): (value.strip() if isinstance(value, str) else value) for key, value in row.items() if key}
                    for row in csv.DictReader(handle)
                ]
        except OSError as exc:
            raise LogFormatError(f"Failed to read CSV file {path}: {exc}") from exc
        return self.analyze_records(rows)

    def analyze_records(self, records: Sequence[Mapping[str, Any]]) -> AnalysisReport:
        attempts = [parse_login_record(record, line=index) for index, record in enumerate(records, start=1)]
        # profiles are only correct when each user's history is replayed in order
        attempts.sort(key=lambda attempt: attempt.timestamp)
        assessments = self.detector.analyze_multiple(attempts)
        return self.build_report(attempts, assessments)

    @staticmethod
    def build_report(attempts: Sequence[LoginAttempt], assessments: Sequence[RiskAssessment]) -> AnalysisReport:
        suspicious = [assessment for assessment in assessments if assessment.is_suspicious]
        return AnalysisReport(
            total_logins=len(attempts),
            suspicious_logins=len(suspicious),
            users_analyzed=len({attempt.user_id for attempt in attempts}),
            high_risk_users=list(dict.fromkeys(assessment.user_id for assessment in suspicious)),
            report_generated_at=datetime.now(timezone.utc),
            detailed_results=list(assessments),
        )

    def export_json(self, report: AnalysisReport, output_path: str | Path) -> None:
        Path(output_path).write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        logger.info("Report exported to: %s", output_path)

    def export_csv(self, report: AnalysisReport, output_path: str | Path) -> None:
        with Path(output_path).open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(CSV_COLUMNS)
            for result in report.detailed_results:
                factors = result.factors
                writer.writerow(
                    [
                        result.user_id,
                        result.timestamp.isoformat(),
                        result.overall_risk,
                        result.risk_level,
                        factors.location_change,
                        factors.impossible_travel,
                        factors.brute_force,
                        factors.unusual_time,
                    ]
                )
        logger.info("Report exported to: %s", output_path)

    @staticmethod
    def format_summary(report: AnalysisReport) -> str:
        def share(count: int) -> float:
            return (count / report.total_logins * 100) if report.total_logins else 0.0

        rule = "=" * 60
        lines = [
            rule,
            "SUSPICIOUS LOGIN DETECTION REPORT",
            rule,
            f"Generated: {report.report_generated_at.isoformat()}",
            f"Total Logins Analyzed: {report.total_logins}",
            f"Users Analyzed: {report.users_analyzed}",
            f"Suspicious Logins: {report.suspicious_logins} ({share(report.suspicious_logins):.2f}%)",
            f"High Risk Users: {len(report.high_risk_users)}",
        ]
        if report.high_risk_users:
            lines.append("")
            lines.append("High Risk User IDs:")
            lines.extend(f"  - {user_id}" for user_id in report.high_risk_users)

        lines.append("")
        lines.append("Risk Level Breakdown:")
        for level, count in report.risk_breakdown().items():
            label = f"{level.capitalize()}:"
            lines.append(f"  {label:<9} {count} ({share(count):.1f}%)")
        lines.append(rule)
        return "\n".join(lines)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze historical login logs for suspicious activity")
    parser.add_argument("input", help="Login log to analyze (.json or .csv)")
    parser.add_argument("output", nargs="?", default=None, help="Optional report path (.json or .csv)")
    parser.add_argument("--geoip-db", default=None, help="MaxMind City database used to resolve addresses")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(None if argv is None else list(argv))


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return 1

    input_ext = input_path.suffix.lower()
    if input_ext not in (".json", ".csv"):
        print("Error: Unsupported file format. Use .json or .csv", file=sys.stderr)
        return 1

    output_ext = Path(args.output).suffix.lower() if args.output else None
    if output_ext not in (None, ".json", ".csv"):
        print("Error: Output format must be .json or .csv", file=sys.stderr)
        return 1

    with ExitStack() as stack:
        try:
            resolver = build_geo_resolver(args.geoip_db or os.getenv("GEOIP_DATABASE_PATH"))
        except OSError as exc:
            print(f"Error: Could not open GeoIP database: {exc}", file=sys.stderr)
            return 1
        if isinstance(resolver, MaxMindGeoResolver):
            stack.enter_context(resolver)
        analyzer = LogAnalyzer(SuspiciousLoginDetector(geo_resolver=resolver))

        try:
            report = analyzer.analyze_json(input_path) if input_ext == ".json" else analyzer.analyze_csv(input_path)
        except LogFormatError as exc:
            print(f"Error analyzing logs: {exc}", file=sys.stderr)
            return 1

    print(analyzer.format_summary(report))

    if output_ext == ".json":
        analyzer.export_json(report, args.output)
    elif output_ext == ".csv":
        analyzer.export_csv(report, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

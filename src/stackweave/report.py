"""
Report generation for synthesis passes.

Generates JSON and Markdown reports for a synthesized plan or for the
single failure that aborted a pass.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from .errors import FailureReport, SynthesisAborted
from .intents import SynthesisPlan


class SynthesisStatus(StrEnum):
    SYNTHESIZED = "synthesized"
    ABORTED = "aborted"


@dataclass
class SynthesisReport:
    """Outcome of one synthesis pass."""

    name: str
    status: SynthesisStatus
    region: str | None = None
    account: str | None = None
    plan: SynthesisPlan | None = None
    failure: FailureReport | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp_utc: str = field(
        default_factory=lambda: datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    )

    @classmethod
    def from_plan(cls, plan: SynthesisPlan) -> SynthesisReport:
        return cls(
            name=plan.name,
            status=SynthesisStatus.SYNTHESIZED,
            region=plan.environment.get("region"),
            account=plan.environment.get("account"),
            plan=plan,
        )

    @classmethod
    def from_error(
        cls,
        error: SynthesisAborted,
        name: str,
        region: str | None = None,
        account: str | None = None,
    ) -> SynthesisReport:
        return cls(
            name=name,
            status=SynthesisStatus.ABORTED,
            region=region,
            account=account,
            failure=error.failure,
        )

    @property
    def success(self) -> bool:
        return self.status == SynthesisStatus.SYNTHESIZED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "run_id": self.run_id,
            "timestamp_utc": self.timestamp_utc,
            "name": self.name,
            "status": self.status.value,
            "region": self.region,
            "account": self.account,
        }
        if self.plan is not None:
            data["summary"] = self.plan.summary()
            data["plan"] = self.plan.to_dict()
        if self.failure is not None:
            data["failure"] = self.failure.to_dict()
        return data


class ReportGenerator:
    """Generates reports from synthesis results."""

    def __init__(self, report: SynthesisReport):
        self.report = report

    def generate_json(self, path: Path | None = None) -> str:
        """
        Generate JSON report.

        Args:
            path: Optional path to write the report to

        Returns:
            JSON string of the report
        """
        json_str = json.dumps(self.report.to_dict(), indent=2)

        if path:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json_str)

        return json_str

    def generate_markdown(self, path: Path | None = None) -> str:
        """
        Generate Markdown report.

        Args:
            path: Optional path to write the report to

        Returns:
            Markdown string of the report
        """
        report = self.report
        lines: list[str] = []

        lines.append(f"# Synthesis Report: {report.name}\n")
        status_emoji = "✅" if report.success else "❌"
        lines.append(f"**Status:** {status_emoji} {report.status.value.upper()}\n")

        lines.append("## Metadata\n")
        lines.append("| Field | Value |")
        lines.append("|-------|-------|")
        lines.append(f"| Run ID | `{report.run_id}` |")
        lines.append(f"| Timestamp | {report.timestamp_utc} |")
        lines.append(f"| Region | {report.region or '-'} |")
        lines.append(f"| Account | {report.account or '-'} |")
        lines.append("")

        if report.failure is not None:
            failure = report.failure
            lines.append("## Failure\n")
            lines.append(f"### `{failure.code}`\n")
            lines.append(f"**Message:** {failure.message}\n")
            if failure.node_id:
                lines.append(f"**Node:** `{failure.node_id}`\n")
            lines.append("No plan was produced.\n")

        if report.plan is not None:
            plan = report.plan
            lines.append("## Summary\n")
            lines.append("| Resource Type | Count |")
            lines.append("|---------------|-------|")
            for resource_type, count in plan.summary().items():
                lines.append(f"| `{resource_type}` | {count} |")
            lines.append(f"| **Total** | **{len(plan)}** |")
            lines.append("")

            lines.append("## Intents\n")
            lines.append("| # | Logical ID | Type | Node |")
            lines.append("|---|------------|------|------|")
            for index, intent in enumerate(plan.intents, start=1):
                lines.append(
                    f"| {index} | `{intent.logical_id}` | {intent.type} | {intent.node_id} |"
                )
            lines.append("")

            if plan.exports:
                lines.append("## Exports\n")
                for key, ref in plan.exports.items():
                    lines.append(f"- **{key}**: `{ref.sub_expr()}`")
                lines.append("")

        lines.append("---\n")
        lines.append("*Generated by stackweave*")

        markdown = "\n".join(lines)

        if path:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(markdown)

        return markdown


def generate_report(
    report: SynthesisReport,
    output_dir: Path,
    formats: list[str] | None = None,
) -> dict[str, Path]:
    """
    Generate reports in specified formats.

    Args:
        report: The synthesis report
        output_dir: Directory to write reports to
        formats: List of formats ("json", "md"). Defaults to both.

    Returns:
        Dictionary mapping format to output path
    """
    if formats is None:
        formats = ["json", "md"]

    generator = ReportGenerator(report)
    output_dir.mkdir(parents=True, exist_ok=True)

    result: dict[str, Path] = {}

    if "json" in formats:
        json_path = output_dir / f"synthesis-{report.run_id}.json"
        generator.generate_json(json_path)
        result["json"] = json_path

    if "md" in formats:
        md_path = output_dir / f"synthesis-{report.run_id}.md"
        generator.generate_markdown(md_path)
        result["md"] = md_path

    return result


__all__ = ["SynthesisStatus", "SynthesisReport", "ReportGenerator", "generate_report"]

import csv
import io
from typing import Dict, List

from core.coverage_analyzer import CoverageSummary
from core.coverage_item import CoverageItem
from report.html_report_generator import render_template
from report.report_section import ReportSection

CSV_COLUMNS = [
    "API", "Protocol", "Method", "Path", "Status Code", "Name", "Covered",
    "Requests", "Primary", "Confidence",
]


def _request_names(item: CoverageItem) -> str:
    return ", ".join(ex.name for ex in item.matched_exchanges)


class CoverageSection(ReportSection):
    def __init__(self, coverage_items: List[CoverageItem], summary: CoverageSummary):
        super().__init__(
            title="API Coverage Analysis",
            description="Contract-declared operations vs. requests found in the collection",
            data=coverage_items,
        )
        self.summary = summary
        self.smart = summary.primary_matches is not None

    def to_markdown(self) -> str:
        s = self.summary
        md = f"## {self.title}\n\n{self.description}\n\n"
        md += f"**Overall Coverage: {s.percentage:.1f}%** ({s.matched}/{s.total} operations covered)\n\n"

        if self.smart:
            md += f"Smart mapping: {s.primary_matches} primary, {s.secondary_matches} secondary matches\n\n"

        if s.unmatched_items:
            md += "### ⚠️ Operations Not Covered\n\n"
            for item in s.unmatched_items:
                code = f" [{item.status_code}]" if item.status_code else ""
                md += f"- `{item.method} {item.path}`{code} {item.name}\n"
            md += "\n"

        if s.tag_coverage:
            md += "### Coverage By Tag\n\n"
            md += "| Tag | Covered | Total | Coverage |\n|-----|---------|-------|----------|\n"
            for tag in s.tag_coverage:
                md += f"| {tag.tag} | {tag.matched} | {tag.total} | {tag.percentage:.1f}% |\n"
            md += "\n"

        md += "### Operation Coverage Details\n\n"
        header = "| Method | Path | Status | Name | Covered | Requests |"
        divider = "|--------|------|--------|------|---------|----------|"
        if self.smart:
            header += " Primary | Confidence |"
            divider += "---------|------------|"
        md += header + "\n" + divider + "\n"

        for item in self.data:
            covered = "⛔ No" if item.unmatched else "✅ Yes"
            row = (
                f"| {item.method} | `{item.path}` | {item.status_code or '-'} | {item.name} "
                f"| {covered} | {_request_names(item)} |"
            )
            if self.smart:
                row += f" {'yes' if item.is_primary_match else ''} | {item.match_confidence or 0:.2f} |"
            md += row + "\n"

        if s.undocumented_exchanges:
            md += "\n### Requests Not In The Contract\n\n"
            for ex in s.undocumented_exchanges:
                md += f"- `{ex.method} {ex.raw_url}` {ex.name}\n"

        return md

    def to_html(self) -> str:
        return render_template(
            "coverage.html",
            title=self.title,
            description=self.description,
            summary=self.summary,
            items=self.data,
            smart=self.smart,
        )

    def to_json(self) -> Dict:
        s = self.summary
        summary = {
            "total": s.total,
            "matched": s.matched,
            "unmatched": s.unmatched,
            "percentage": round(s.percentage, 2),
            "api_names": s.api_names,
            "tags": [
                {"tag": t.tag, "matched": t.matched, "total": t.total, "percentage": round(t.percentage, 2)}
                for t in s.tag_coverage
            ],
            "undocumented_requests": [
                {"name": ex.name, "method": ex.method, "url": ex.raw_url} for ex in s.undocumented_exchanges
            ],
        }
        if self.smart:
            summary["primary_matches"] = s.primary_matches
            summary["secondary_matches"] = s.secondary_matches
        return {
            "title": self.title,
            "description": self.description,
            "summary": summary,
            "details": [item.to_dict() for item in self.data],
        }

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for item in self.data:
            writer.writerow([
                item.api_name,
                item.protocol,
                item.method,
                item.path,
                item.status_code,
                item.name,
                "no" if item.unmatched else "yes",
                _request_names(item),
                "" if item.is_primary_match is None else ("yes" if item.is_primary_match else "no"),
                "" if item.match_confidence is None else f"{item.match_confidence:.2f}",
            ])
        return buffer.getvalue()

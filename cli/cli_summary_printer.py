from typing import List, Tuple

from colorama import Fore, Style, init
from tabulate import tabulate

from core.coverage_analyzer import CoverageSummary
from core.coverage_item import CoverageItem
from verifier.exchange_entry import ObservedExchange


def _paint(text: str, color: str, enabled: bool) -> str:
    return f"{color}{text}{Style.RESET_ALL}" if enabled else text


def coverage_color(percentage: float) -> str:
    if percentage >= 80:
        return Fore.GREEN
    if percentage >= 50:
        return Fore.YELLOW
    return Fore.RED


def format_summary(summary: CoverageSummary, color: bool = True) -> str:
    if color:
        init()
    lines = []

    lines.append("API COVERAGE REPORT")
    lines.append("===================\n")

    if len(summary.api_names) > 1:
        lines.append(f"APIs analyzed: {', '.join(summary.api_names)}\n")

    rows = [
        ["Operations", summary.total],
        ["Covered", summary.matched],
        ["Not covered", summary.unmatched],
        ["Coverage", _paint(f"{summary.percentage:.1f}%", coverage_color(summary.percentage), color)],
    ]
    if summary.primary_matches is not None:
        rows.append(["Primary matches", summary.primary_matches])
        rows.append(["Secondary matches", summary.secondary_matches])
    rows.append(["Requests not in contract", len(summary.undocumented_exchanges)])

    lines.append(tabulate(rows, headers=["Metric", "Value"]))
    lines.append("")

    if summary.unmatched_items:
        lines.append(_paint("OPERATIONS NOT COVERED", Fore.RED, color))
        lines.append("-" * 50)
        table = [
            [item.method, item.path, item.status_code or "-", item.name, item.api_name]
            for item in summary.unmatched_items
        ]
        lines.append(tabulate(table, headers=["Method", "Path", "Status", "Name", "API"]))
        lines.append("")

    if summary.undocumented_exchanges:
        lines.append(_paint("REQUESTS NOT IN THE CONTRACT", Fore.YELLOW, color))
        lines.append("-" * 50)
        for exchange in summary.undocumented_exchanges:
            lines.append(f"• {exchange.method} {exchange.raw_url} ({exchange.name})")
        lines.append("")

    return "\n".join(lines)


def format_near_misses(near_misses: List[Tuple[CoverageItem, List[Tuple[ObservedExchange, float]]]],
                       color: bool = True) -> str:
    if not near_misses:
        return "No near misses found."

    lines = [_paint("NEAR MISSES", Fore.CYAN, color), "-" * 50]
    for item, candidates in near_misses:
        code = f" [{item.status_code}]" if item.status_code else ""
        lines.append(f"{item.method} {item.path}{code}")
        for exchange, score in candidates:
            lines.append(f"  - {score:.2f}  {exchange.method} {exchange.raw_url} ({exchange.name})")
    return "\n".join(lines)

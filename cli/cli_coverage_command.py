import argparse
import logging
from pathlib import Path
from typing import List

from cli.cli_exit_codes import ExitCode
from cli.cli_summary_printer import format_near_misses, format_summary
from contract.operation_loader import OperationLoader
from core.coverage_analyzer import CoverageAnalyzer, CoverageSummary
from core.coverage_item import CoverageItem
from core.exceptions import CoverageError
from core.run_config import RunConfig, apply_cli_overrides, load_run_config
from report.coverage_section import CoverageSection
from report.html_report_generator import HtmlReportGenerator
from report.json_exporter import export_json
from verifier.exchange_loader import ExchangeLoader

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(level=log_level, format=log_format)
    logging.getLogger("jsonschema").setLevel(logging.WARNING)


def split_spec_paths(value: str) -> List[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


def write_report(coverage_items: List[CoverageItem], summary: CoverageSummary, config: RunConfig) -> Path:
    output_path = Path(config.report.output)
    output_format = config.report.format

    if output_format == "json":
        return export_json(coverage_items, summary, output_path, options=config.matching.model_dump())

    section = CoverageSection(coverage_items, summary)
    if output_format == "html":
        content = HtmlReportGenerator({"coverage": section.to_html()}, api_names=summary.api_names).generate()
    else:
        content = section.render(output_format)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding="utf-8")
    logger.info(f"✅ Coverage report written to {output_path}")
    return output_path


def handle_coverage_command(args: argparse.Namespace) -> int:
    """
    Handles the 'coverage' command from the CLI.
    Maps the contract operations onto the collection's requests and prints a summary.
    """
    setup_logging(args.verbose)
    color = not args.no_color

    if args.fail_under is not None and not 0 <= args.fail_under <= 100:
        print(f"❌ --fail-under must be between 0 and 100, got {args.fail_under}")
        return ExitCode.USAGE_ERROR

    spec_paths = split_spec_paths(args.spec)
    if not spec_paths:
        print("❌ No spec file given")
        return ExitCode.USAGE_ERROR

    try:
        config = apply_cli_overrides(args, load_run_config(args.config))
        operations = OperationLoader.load_many(spec_paths)
        exchanges = ExchangeLoader.load_from_file(args.collection)
    except CoverageError as e:
        logger.error(f"❌ Failed to load inputs: {e}")
        print(f"\n❌ Coverage run failed.\nReason: {e}")
        return ExitCode.LOAD_ERROR

    analyzer = CoverageAnalyzer(config.matching)
    coverage_items = analyzer.map_operations(operations, exchanges)
    summary = analyzer.summarize(coverage_items, exchanges)

    print(format_summary(summary, color=color))

    if args.show_near_misses:
        print(format_near_misses(analyzer.near_misses(summary.unmatched_items, exchanges), color=color))

    if config.report.output:
        try:
            output_path = write_report(coverage_items, summary, config)
        except OSError as e:
            logger.error(f"❌ Could not write report: {e}")
            print(f"\n❌ Could not write report to {config.report.output}: {e}")
            return ExitCode.LOAD_ERROR
        print(f"\n✅ Report written to {output_path}")

    if args.fail_under is not None and summary.percentage < args.fail_under:
        print(f"\n❌ Coverage {summary.percentage:.1f}% is below the required {args.fail_under:.1f}%")
        return ExitCode.BELOW_THRESHOLD

    return ExitCode.SUCCESS

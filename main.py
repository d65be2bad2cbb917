import argparse
import sys

from cli.cli_coverage_command import handle_coverage_command
from cli.cli_exit_codes import ExitCode
from cli.cli_validate_command import handle_validate_command
from report.report_section import REPORT_FORMATS


# --- CLI Setup ---
def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="📊 apicov: API contract coverage from Postman collections and Newman reports",
        epilog="""Examples:
  apicov validate openapi.yaml
  apicov coverage openapi.yaml collection.json
  apicov coverage users.yaml,orders.yaml newman-report.json --smart-mapping --fail-under 80
  apicov coverage openapi.yaml collection.json --output coverage.html""",
        formatter_class=argparse.RawTextHelpFormatter
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="Available Commands",
        metavar="{coverage, validate}"
    )

    # coverage
    coverage_parser = subparsers.add_parser("coverage", help="Measure how much of a contract a collection exercises")
    coverage_parser.add_argument("spec", type=str, help="Contract file, or several separated by commas")
    coverage_parser.add_argument("collection", type=str, help="Postman collection or Newman JSON report")
    coverage_parser.add_argument("--strict-query", action="store_true", help="Require declared query parameters")
    coverage_parser.add_argument("--strict-body", action="store_true", help="Require a valid JSON body where one is declared")
    coverage_parser.add_argument("--smart-mapping", action="store_true", help="Resolve status-code outcomes per method+path")
    coverage_parser.add_argument("--graphql-endpoint", type=str, help="Endpoint path for query-language operations")
    coverage_parser.add_argument("--config", type=str, help="Run configuration YAML (default: .apicov.yaml if present)")
    coverage_parser.add_argument("--output", type=str, help="Write a report to this file")
    coverage_parser.add_argument("--format", choices=REPORT_FORMATS, default=None, help="Report format (default: html)")
    coverage_parser.add_argument("--fail-under", type=float, default=None, help="Exit with 3 below this coverage percentage")
    coverage_parser.add_argument("--show-near-misses", action="store_true", help="List closest requests for uncovered operations")
    coverage_parser.add_argument("--no-color", action="store_true")
    coverage_parser.add_argument("--verbose", action="store_true")
    coverage_parser.set_defaults(func=handle_coverage_command)

    # validate
    validate_parser = subparsers.add_parser("validate", help="Load contract files and list their operations")
    validate_parser.add_argument("path", type=str, help="Contract file, or several separated by commas")
    validate_parser.add_argument("--verbose", action="store_true")
    validate_parser.set_defaults(func=handle_validate_command)

    return parser


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return ExitCode.USAGE_ERROR

    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())

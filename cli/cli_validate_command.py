import logging

from tabulate import tabulate

from cli.cli_coverage_command import setup_logging, split_spec_paths
from cli.cli_exit_codes import ExitCode
from contract.operation_loader import OperationLoader
from core.exceptions import OperationLoadError


def handle_validate_command(args) -> int:
    """
    Handles the 'validate' command from the CLI.
    Loads one or more contract files and lists the operations they declare.
    """
    setup_logging(args.verbose)
    spec_paths = split_spec_paths(args.path)

    try:
        operations = OperationLoader.load_many(spec_paths)
    except OperationLoadError as e:
        logging.error(f"❌ Validation failed: {e}")
        print(f"\n❌ Contract validation failed for: {args.path}")
        print(f"Reason: {e}")
        return ExitCode.LOAD_ERROR

    rows = [
        [op.protocol, op.method.value, op.path_template or "-", op.outcome_status_code or "-", op.display_name]
        for op in operations
    ]
    print(tabulate(rows, headers=["Protocol", "Method", "Path", "Status", "Name"]))
    print(f"\n✅ Contract validation succeeded: {len(operations)} operations in {args.path}")
    return ExitCode.SUCCESS

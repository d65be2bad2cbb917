import logging
from collections import OrderedDict
from enum import Enum
from typing import List, Sequence, Tuple

from contract.operation_entry import DeclaredOperation, is_success_status_code
from core.correlation_coordinator import CorrelationCoordinator
from core.coverage_item import CoverageItem
from verifier.exchange_entry import ObservedExchange

logger = logging.getLogger(__name__)

IndexedExchange = Tuple[int, ObservedExchange]


class OutcomeState(str, Enum):
    UNASSIGNED = "unassigned"
    PRIMARY_ASSIGNED = "primary_assigned"
    MATCHED_BY_EXPLICIT_CODE = "matched_by_explicit_code"


def outcome_priority(operation: DeclaredOperation) -> Tuple[int, int]:
    """Sort key: 2xx outcomes first, then other numeric codes, then absent or non-numeric codes."""
    code = operation.outcome_status_code
    try:
        value = int(code)
    except (TypeError, ValueError):
        return 2, 0
    if 200 <= value < 300:
        return 0, value
    return 1, value


def group_operations(operations: Sequence[DeclaredOperation]) -> "OrderedDict[Tuple[str, ...], List[DeclaredOperation]]":
    groups: "OrderedDict[Tuple[str, ...], List[DeclaredOperation]]" = OrderedDict()
    for operation in operations:
        groups.setdefault(operation.group_key, []).append(operation)
    return groups


def is_success_evidence(exchange: ObservedExchange) -> bool:
    codes = exchange.tested_status_codes
    return not codes or any(is_success_status_code(c) for c in codes)


class SmartMappingResolver:
    """
    Resolves outcome groups that share one method+path so that a single exchange
    is not counted against every declared status code.

    Within a group the highest-priority eligible outcome becomes the primary
    match and takes the first success-compatible exchange; every other
    attachment requires the exchange to name the outcome's status code.
    """

    def __init__(self, coordinator: CorrelationCoordinator):
        self.coordinator = coordinator

    def resolve(self, operations: Sequence[DeclaredOperation],
                exchanges: Sequence[ObservedExchange]) -> List[CoverageItem]:
        indexed = list(enumerate(exchanges))
        items: List[CoverageItem] = []
        for key, group in group_operations(operations).items():
            group_items = self.resolve_group(group, indexed)
            logger.debug(
                f"Group {key}: {sum(1 for i in group_items if not i.unmatched)}/{len(group_items)} outcomes matched"
            )
            items.extend(group_items)
        return items

    def _structural_candidates(self, group: List[DeclaredOperation],
                               exchanges: List[IndexedExchange]) -> List[IndexedExchange]:
        return [
            (index, exchange) for index, exchange in exchanges
            if any(self.coordinator.structural_match(op, exchange).passed for op in group)
        ]

    def resolve_group(self, group: List[DeclaredOperation],
                      exchanges: List[IndexedExchange]) -> List[CoverageItem]:
        prioritized = sorted(group, key=outcome_priority)
        candidates = self._structural_candidates(group, exchanges)

        has_success_outcome = any(op.has_success_outcome for op in group)
        primary_assigned = False
        items: List[CoverageItem] = []

        for operation in prioritized:
            item = CoverageItem.from_operation(operation, smart_mapping=True)
            state = OutcomeState.UNASSIGNED

            eligible = operation.has_success_outcome or (
                not operation.outcome_status_code and not has_success_outcome
            )

            for index, exchange in candidates:
                result = self.coordinator.evaluate_with_confidence(operation, exchange)
                if not result.matches:
                    continue

                tests_this_outcome = bool(
                    operation.outcome_status_code
                    and operation.outcome_status_code in exchange.tested_status_codes
                )
                takes_primary = (
                    eligible and not primary_assigned and is_success_evidence(exchange)
                )

                if not (takes_primary or tests_this_outcome):
                    continue

                item.attach(exchange, index, result.confidence)
                if takes_primary:
                    item.is_primary_match = True
                    primary_assigned = True
                    state = OutcomeState.PRIMARY_ASSIGNED
                elif state == OutcomeState.UNASSIGNED:
                    state = OutcomeState.MATCHED_BY_EXPLICIT_CODE

            logger.debug(f"{item.method} {item.path} ({item.status_code or '-'}): {state.value}")
            items.append(item)

        return items

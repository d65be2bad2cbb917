import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from contract.operation_entry import DeclaredOperation, Protocol
from contract.operation_loader import OperationLoader
from core.correlation_coordinator import CorrelationCoordinator
from core.coverage_item import CoverageItem
from core.exceptions import EngineInputError
from core.run_config import MatchOptions
from core.smart_mapping import SmartMappingResolver
from router.path_matcher import path_similarity
from verifier.exchange_entry import ObservedExchange
from verifier.exchange_loader import ExchangeLoader

logger = logging.getLogger(__name__)


@dataclass
class TagCoverage:
    tag: str
    total: int = 0
    matched: int = 0

    @property
    def percentage(self) -> float:
        return (self.matched / self.total * 100) if self.total else 0.0


@dataclass
class CoverageSummary:
    total: int
    matched: int
    percentage: float
    unmatched_items: List[CoverageItem] = field(default_factory=list)
    undocumented_exchanges: List[ObservedExchange] = field(default_factory=list)
    api_names: List[str] = field(default_factory=list)
    primary_matches: Optional[int] = None
    secondary_matches: Optional[int] = None
    tag_coverage: List[TagCoverage] = field(default_factory=list)

    @property
    def unmatched(self) -> int:
        return self.total - self.matched


def _ensure_sequence(value: Any, label: str) -> Sequence[Any]:
    if not isinstance(value, (list, tuple)):
        raise EngineInputError(f"{label} must be a list, got {type(value).__name__}")
    return value


def coerce_operations(operations: Any) -> List[DeclaredOperation]:
    coerced = []
    for i, record in enumerate(_ensure_sequence(operations, "operations")):
        if isinstance(record, DeclaredOperation):
            coerced.append(record)
            continue
        if not isinstance(record, dict):
            raise EngineInputError(f"Operation #{i + 1} must be a mapping, got {type(record).__name__}")
        try:
            coerced.append(OperationLoader.parse_operation(record))
        except ValidationError as e:
            logger.warning(f"Operation #{i + 1} is not a valid operation record and will never match:\n{e}")
            coerced.append(OperationLoader.degraded_operation(record, e))
    return coerced


def coerce_exchanges(exchanges: Any) -> List[ObservedExchange]:
    coerced = []
    for i, record in enumerate(_ensure_sequence(exchanges, "exchanges")):
        if isinstance(record, ObservedExchange):
            coerced.append(record)
            continue
        if not isinstance(record, dict):
            raise EngineInputError(f"Exchange #{i + 1} must be a mapping, got {type(record).__name__}")
        try:
            coerced.append(ExchangeLoader.parse_exchange(record))
        except ValidationError as e:
            logger.warning(f"Exchange #{i + 1} is not a valid exchange record and will never match:\n{e}")
            coerced.append(ExchangeLoader.degraded_exchange(record, e))
    return coerced


class CoverageAnalyzer:
    """Maps declared operations onto observed exchanges and reports coverage per operation."""

    def __init__(self, options: Optional[MatchOptions] = None):
        self.options = options or MatchOptions()
        self.coordinator = CorrelationCoordinator(self.options)

    def map_operations(self, operations: Any, exchanges: Any) -> List[CoverageItem]:
        operations = coerce_operations(operations)
        exchanges = coerce_exchanges(exchanges)

        if self.options.smart_mapping:
            coverage_items = SmartMappingResolver(self.coordinator).resolve(operations, exchanges)
        else:
            coverage_items = self._map_flat(operations, exchanges)

        matched_count = sum(1 for item in coverage_items if not item.unmatched)
        logger.info(f"Operations mapped: {matched_count}, not covered: {len(coverage_items) - matched_count}")

        if self.options.smart_mapping:
            primary = sum(1 for item in coverage_items if not item.unmatched and item.is_primary_match)
            logger.info(f"Smart mapping: {primary} primary matches, {matched_count - primary} secondary matches")

        return coverage_items

    def _map_flat(self, operations: List[DeclaredOperation],
                  exchanges: List[ObservedExchange]) -> List[CoverageItem]:
        coverage_items = []
        for operation in operations:
            item = CoverageItem.from_operation(operation)
            for index, exchange in enumerate(exchanges):
                if self.coordinator.evaluate(operation, exchange):
                    item.attach(exchange, index)
            coverage_items.append(item)
        return coverage_items

    @staticmethod
    def summarize(coverage_items: List[CoverageItem], exchanges: Any = None) -> CoverageSummary:
        total = len(coverage_items)
        matched = sum(1 for item in coverage_items if not item.unmatched)
        percentage = (matched / total * 100) if total else 0.0

        undocumented = []
        if exchanges is not None:
            exchanges = coerce_exchanges(exchanges)
            attached = {index for item in coverage_items for index in item.exchange_indices}
            undocumented = [ex for i, ex in enumerate(exchanges) if i not in attached]

        api_names = []
        for item in coverage_items:
            if item.api_name and item.api_name not in api_names:
                api_names.append(item.api_name)

        summary = CoverageSummary(
            total=total,
            matched=matched,
            percentage=percentage,
            unmatched_items=[item for item in coverage_items if item.unmatched],
            undocumented_exchanges=undocumented,
            api_names=api_names,
            tag_coverage=CoverageAnalyzer.coverage_by_tag(coverage_items),
        )

        if any(item.is_primary_match is not None for item in coverage_items):
            summary.primary_matches = sum(
                1 for item in coverage_items if not item.unmatched and item.is_primary_match
            )
            summary.secondary_matches = matched - summary.primary_matches

        return summary

    @staticmethod
    def coverage_by_tag(coverage_items: List[CoverageItem]) -> List[TagCoverage]:
        """Covered/total per tag, in order of first appearance. Untagged operations are left out."""
        by_tag: Dict[str, TagCoverage] = {}
        for item in coverage_items:
            for tag in dict.fromkeys(item.tags):
                stats = by_tag.setdefault(tag, TagCoverage(tag=tag))
                stats.total += 1
                if not item.unmatched:
                    stats.matched += 1
        return list(by_tag.values())

    @staticmethod
    def near_misses(unmatched_items: List[CoverageItem], exchanges: Any,
                    limit: int = 3) -> List[Tuple[CoverageItem, List[Tuple[ObservedExchange, float]]]]:
        """
        For each uncovered REST operation, the exchanges whose URL comes closest
        to its path template, best first. A score of 1.0 means the path matched
        and some other stage rejected the pair.
        """
        exchanges = coerce_exchanges(exchanges)
        results = []
        for item in unmatched_items:
            if item.protocol != Protocol.REST.value or not item.path:
                continue
            scored = [(exchange, path_similarity(exchange.raw_url, item.path)) for exchange in exchanges]
            scored = [(exchange, score) for exchange, score in scored if score > 0.0]
            scored.sort(key=lambda pair: pair[1], reverse=True)
            if scored:
                results.append((item, scored[:limit]))
        return results

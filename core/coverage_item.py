from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from contract.operation_entry import DeclaredOperation
from verifier.exchange_entry import ObservedExchange


@dataclass
class MatchedExchange:
    """The reporting view of an exchange attached to a coverage item."""
    name: str
    raw_url: str
    method: str
    tested_status_codes: List[str] = field(default_factory=list)
    test_scripts: str = ""
    executed: bool = False
    response_code: Optional[int] = None
    confidence: Optional[float] = None

    @classmethod
    def from_exchange(cls, exchange: ObservedExchange, confidence: Optional[float] = None) -> "MatchedExchange":
        return cls(
            name=exchange.name,
            raw_url=exchange.raw_url,
            method=exchange.method.upper(),
            tested_status_codes=list(exchange.tested_status_codes),
            test_scripts=exchange.test_scripts,
            executed=exchange.executed,
            response_code=exchange.response_code,
            confidence=confidence,
        )


@dataclass
class CoverageItem:
    method: str
    path: str
    name: str
    status_code: str = ""
    tags: List[str] = field(default_factory=list)
    expected_status_codes: List[str] = field(default_factory=list)
    protocol: str = "rest"
    api_name: str = ""
    source_file: str = ""
    unmatched: bool = True
    matched_exchanges: List[MatchedExchange] = field(default_factory=list)
    is_primary_match: Optional[bool] = None
    match_confidence: Optional[float] = None
    # positions of attached exchanges in the input list
    exchange_indices: List[int] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def from_operation(cls, operation: DeclaredOperation, smart_mapping: bool = False) -> "CoverageItem":
        item = cls(
            method=operation.method.value,
            path=operation.path_template or "",
            name=operation.display_name,
            status_code=operation.outcome_status_code or "",
            tags=list(operation.tags),
            expected_status_codes=list(operation.expected_status_codes),
            protocol=getattr(operation, "protocol", "rest"),
            api_name=operation.api_name,
            source_file=operation.source_file,
        )
        if smart_mapping:
            item.is_primary_match = False
            item.match_confidence = 0.0
        return item

    def attach(self, exchange: ObservedExchange, index: int, confidence: Optional[float] = None) -> None:
        self.unmatched = False
        self.matched_exchanges.append(MatchedExchange.from_exchange(exchange, confidence))
        self.exchange_indices.append(index)
        if confidence is not None:
            self.match_confidence = max(self.match_confidence or 0.0, confidence)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("exchange_indices", None)
        if self.is_primary_match is None:
            data.pop("is_primary_match")
            data.pop("match_confidence")
        return data

import logging
from dataclasses import dataclass
from typing import Optional

from contract.operation_entry import DeclaredOperation, is_success_status_code
from core.protocol_matchers import StageResult, matcher_for
from core.run_config import MatchOptions
from verifier.exchange_entry import ObservedExchange

logger = logging.getLogger(__name__)

# Confidence policy. Relative ordering matters more than the literal weights:
# exact status > both-success > no status declared.
BASE_STRUCTURAL_CONFIDENCE = 0.6
EXACT_STATUS_BONUS = 0.3
SUCCESS_FAMILY_BONUS = 0.2
NO_STATUS_DECLARED_BONUS = 0.1
STRICT_VALIDATION_BONUS = 0.1
MAX_CONFIDENCE = 1.0


@dataclass(frozen=True)
class MatchResult:
    matches: bool
    confidence: float
    reason: str = "matched"


class CorrelationCoordinator:
    """Evaluates one declared operation against one observed exchange."""

    def __init__(self, options: Optional[MatchOptions] = None):
        self.options = options or MatchOptions()

    def structural_match(self, operation: DeclaredOperation, exchange: ObservedExchange) -> StageResult:
        return matcher_for(operation).structural(operation, exchange, self.options)

    def explain(self, operation: DeclaredOperation, exchange: ObservedExchange) -> StageResult:
        result = matcher_for(operation).evaluate(operation, exchange, self.options)
        logger.debug(
            f"{operation.method.value} {operation.path_template} "
            f"({operation.outcome_status_code or '-'}) vs '{exchange.name}': {result.reason}"
        )
        return result

    def evaluate(self, operation: DeclaredOperation, exchange: ObservedExchange) -> bool:
        return self.explain(operation, exchange).passed

    def evaluate_with_confidence(self, operation: DeclaredOperation, exchange: ObservedExchange) -> MatchResult:
        structural = self.structural_match(operation, exchange)
        if not structural.passed:
            return MatchResult(matches=False, confidence=0.0, reason=structural.reason)

        return MatchResult(matches=True, confidence=self.score(operation, exchange))

    def score(self, operation: DeclaredOperation, exchange: ObservedExchange) -> float:
        confidence = BASE_STRUCTURAL_CONFIDENCE
        declared = operation.outcome_status_code
        tested = exchange.tested_status_codes

        if declared:
            if declared in tested:
                confidence += EXACT_STATUS_BONUS
            elif is_success_status_code(declared) and any(is_success_status_code(c) for c in tested):
                confidence += SUCCESS_FAMILY_BONUS
        else:
            confidence += NO_STATUS_DECLARED_BONUS

        if self.options.strict_requested:
            confidence += STRICT_VALIDATION_BONUS

        # 0.6 + 0.3 is not exactly 0.9 in binary floating point
        return round(min(confidence, MAX_CONFIDENCE), 4)

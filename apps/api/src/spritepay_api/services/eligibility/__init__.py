"""Starting-credit eligibility services."""

from .authority import (
    AuthorityStatus,
    DatabaseEligibilityAuthority,
    DecisionResult,
    EligibilityAuthority,
    EligibilityResult,
    EvaluationInputs,
)
from .evaluator import EligibilityContext, EligibilityEvaluator, EligibilityOutcome, EligibilityState

__all__ = [
    "AuthorityStatus",
    "DatabaseEligibilityAuthority",
    "DecisionResult",
    "EligibilityAuthority",
    "EligibilityContext",
    "EligibilityEvaluator",
    "EligibilityOutcome",
    "EligibilityResult",
    "EligibilityState",
    "EvaluationInputs",
]

"""
Service layer for the CampusGuard engine.

This package contains the match evaluator, the suspicious-activity
analyzer, the audience resolver, the identity and alert stores, and the
dispatcher that ties them together.
"""

from .match_evaluator import Indeterminate, Verdict, compare_and_evaluate, evaluate_match
from .suspicion import SuspicionResult, analyze
from .audience import is_recipient, resolve_audience, resolve_recipients
from .dispatcher import AlertDispatcher, DispatchResult, VerificationOutcome

__all__ = [
    "Indeterminate",
    "Verdict",
    "compare_and_evaluate",
    "evaluate_match",
    "SuspicionResult",
    "analyze",
    "is_recipient",
    "resolve_audience",
    "resolve_recipients",
    "AlertDispatcher",
    "DispatchResult",
    "VerificationOutcome",
]

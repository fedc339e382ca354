"""Handoff: contracts and retries for unreliable producer functions.

Wrap an LLM-backed function with guard() to validate what goes in and
what comes out. Failed outputs are retried with feedback about what went
wrong; exhausted calls end in a HandoffViolation carrying the full
attempt ledger.
"""

from handoff._version import __version__

# Core entry point
from handoff.guard import guard

# Ambient retry state
from handoff.retry import (
    RetryState,
    get_retry_state,
    retry,
    retry_scope,
    run_with_retry_state,
    run_with_retry_state_async,
)

# Configuration
from handoff.config import CustomHandler, GuardConfig, OnFail

# Diagnostics and ledger
from handoff.models import (
    AttemptRecord,
    ContractType,
    Diagnostic,
    DiagnosticKind,
    ViolationContext,
)

# Exceptions
from handoff.exceptions import (
    GuardInvariantError,
    HandoffError,
    HandoffViolation,
    ParseError,
)

# Decoding helpers
from handoff.utils import parse_json

# Test support
from handoff.testing import mock_retry, mock_retry_async

__all__ = [
    "__version__",
    "guard",
    "retry",
    "RetryState",
    "get_retry_state",
    "retry_scope",
    "run_with_retry_state",
    "run_with_retry_state_async",
    "GuardConfig",
    "OnFail",
    "CustomHandler",
    "AttemptRecord",
    "ContractType",
    "Diagnostic",
    "DiagnosticKind",
    "ViolationContext",
    "HandoffError",
    "HandoffViolation",
    "ParseError",
    "GuardInvariantError",
    "parse_json",
    "mock_retry",
    "mock_retry_async",
]

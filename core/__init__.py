"""
BehaviorGuard Core

Central module exports for the continuous re-authentication engine.
"""

from core.orchestrator import GuardOrchestrator, ProfileValidationError

__all__ = [
    "GuardOrchestrator",
    "ProfileValidationError",
]

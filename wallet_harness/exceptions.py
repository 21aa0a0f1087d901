"""
Exceptions raised by the harness.

Schema, business-rule and consistency violations are never raised: they are
returned as ``ValidationResult`` objects.  Only the conditions below
interrupt a workflow.
"""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """Base class for every harness exception."""


class TransportFailure(HarnessError):
    """A non-2xx response where the caller required success.

    The raw status/body pair is kept so scenarios can assert against it.
    """

    def __init__(self, endpoint: str, status_code: int, body: Any):
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        super().__init__(f"{endpoint} returned HTTP {status_code}: {body!r}")


class UnknownScenarioError(HarnessError, KeyError):
    """Raised when a scenario name is not registered with the generator."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown scenario: {name!r}")

    def __str__(self) -> str:
        return self.args[0]


class NoPendingSpanError(HarnessError, KeyError):
    """Raised when a performance span is closed without being opened."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"No pending performance span for label {label!r}")

    def __str__(self) -> str:
        return self.args[0]


class ScenarioFileError(HarnessError):
    """A scenario YAML file could not be turned into a ``TestScenario``."""

    def __init__(self, path: Any, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")

"""
Wallet Harness: scenario-driven verification of a remote wallet service.

Creates transactions against the service, polls them to a terminal state and
checks every result against wire contracts, business rules and wallet
consistency.
"""

__version__ = "0.1.0"

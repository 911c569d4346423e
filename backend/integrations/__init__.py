"""External API integrations.

This package contains:
- Aggregator protocol: Plaid-shaped value types and the client interface
- Plaid client: Integration with the Plaid API
- Exceptions: Typed errors raised by aggregator clients
"""

from integrations.aggregator_protocol import (
    AggregatorAccount,
    AggregatorClient,
    AggregatorInstitution,
    AggregatorTransaction,
)

__all__ = [
    "AggregatorAccount",
    "AggregatorClient",
    "AggregatorInstitution",
    "AggregatorTransaction",
]

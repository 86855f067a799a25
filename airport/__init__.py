"""Airport: account and identity migration between data-hosting providers.

Moves a decentralized identity, its repository, blobs and preferences from a
source provider to a target provider, then re-anchors the identity on the
public ledger and swaps which account is active.
"""

__version__ = "0.3.0"
__description__ = "Account and identity migration orchestrator for federated providers"

from airport.core.event_bus import MigrationEventBus
from airport.core.orchestrator import MigrationOrchestrator
from airport.core.verification import VerificationOracle
from airport.models.params import MigrationParameters

__all__ = [
    "MigrationEventBus",
    "MigrationOrchestrator",
    "MigrationParameters",
    "VerificationOracle",
    "__version__",
]

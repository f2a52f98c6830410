"""
Contracts for the systems the engine reports to.

The engine computes; these collaborators store, account and deliver.
Implementations live outside this package.
"""

from typing import Any, Dict, Optional, Protocol


class AccountingCollaborator(Protocol):
    async def record_outcome(
        self,
        address_index: int,
        outcome: str,
        amount: Optional[str],
        arrangement_id: Optional[str],
        case_reference: Optional[str],
    ) -> None:
        """Record a payment event (ARR, PIF, Done) against an address."""
        ...


class PersistenceCollaborator(Protocol):
    async def add_arrangement(self, fields: Dict[str, Any]) -> str:
        """Store a new arrangement and return its id."""
        ...

    async def update_arrangement(self, arrangement_id: str, changes: Dict[str, Any]) -> None:
        ...

    async def delete_arrangement(self, arrangement_id: str) -> None:
        ...

    async def save_notification(self, notification: Dict[str, Any]) -> None:
        ...


class AddressResolver(Protocol):
    async def resolve(self, address: str) -> int:
        """Index of an existing address, creating the address if needed."""
        ...


class DeliveryCollaborator(Protocol):
    async def send(self, message: str, phone_number: str) -> None:
        ...

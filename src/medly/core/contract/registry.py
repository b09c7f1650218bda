"""Contract registry: in-memory index of loaded answer contracts."""

from __future__ import annotations

import logging

from medly.core.contract.models import AnswerContract

logger = logging.getLogger(__name__)


class ContractNotFoundError(LookupError):
    """Raised when no contract is registered for an id or intent."""


class ContractRegistry:
    """In-memory registry of all loaded contract definitions."""

    def __init__(self) -> None:
        self._contracts: dict[str, AnswerContract] = {}
        self._by_intent: dict[str, str] = {}

    def register(self, contract: AnswerContract) -> None:
        if contract.id in self._contracts:
            raise ValueError(f"Duplicate contract id registered: {contract.id!r}")
        if contract.intent in self._by_intent:
            raise ValueError(
                f"Intent {contract.intent!r} already bound to contract "
                f"{self._by_intent[contract.intent]!r}"
            )
        self._contracts[contract.id] = contract
        self._by_intent[contract.intent] = contract.id

    def get(self, contract_id: str) -> AnswerContract | None:
        return self._contracts.get(contract_id)

    def for_intent(self, intent: str) -> AnswerContract:
        """Contract bound to ``intent``, falling back to the ``general`` contract."""
        contract_id = self._by_intent.get(intent) or self._by_intent.get("general")
        if contract_id is None:
            raise ContractNotFoundError(f"No contract for intent {intent!r} and no general contract")
        if intent not in self._by_intent:
            logger.warning("No contract for intent %s, using general", intent)
        return self._contracts[contract_id]

    def intents(self) -> list[str]:
        return list(self._by_intent)

    def all(self) -> list[AnswerContract]:
        return list(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

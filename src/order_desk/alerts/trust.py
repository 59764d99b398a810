"""Sender-domain trust gate for purchase-order emails."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from order_desk.core.interfaces import LedgerClient, LedgerError
from order_desk.correlation.headers import domain_of
from order_desk.ledger.matching import customer_domains

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class TrustedDomains:
    """Domains a purchase order may legitimately come from."""

    whitelist: frozenset[str] = frozenset()
    correspondents: frozenset[str] = frozenset()
    customers: frozenset[str] = frozenset()
    _all: frozenset[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._all = self.whitelist | self.correspondents | self.customers

    @classmethod
    def build(
        cls,
        whitelist: Iterable[str],
        correspondents: Iterable[str],
        ledger: LedgerClient | None,
    ) -> TrustedDomains:
        """Combine configured, previously mailed and ledger customer domains."""
        ledger_domains: set[str] = set()
        if ledger is not None:
            try:
                ledger_domains = customer_domains(ledger.list_customers())
            except LedgerError as exc:
                LOGGER.warning("Ledger customer domains unavailable: %s", exc)
        trusted = cls(
            whitelist=frozenset(domain.lower() for domain in whitelist),
            correspondents=frozenset(domain.lower() for domain in correspondents),
            customers=frozenset(ledger_domains),
        )
        LOGGER.info(
            "Trusted domains: %d (%d whitelist, %d mailed, %d ledger customers)",
            len(trusted),
            len(trusted.whitelist),
            len(trusted.correspondents),
            len(trusted.customers),
        )
        return trusted

    def __len__(self) -> int:
        return len(self._all)

    def is_trusted(self, address: str | None) -> bool:
        """Return ``True`` when the address' domain, or a parent domain, is trusted."""
        domain = domain_of(address)
        if domain is None:
            return False
        parts = domain.split(".")
        suffixes = max(len(parts) - 1, 1)
        return any(".".join(parts[index:]) in self._all for index in range(suffixes))


__all__ = ["TrustedDomains"]

"""Map raw ledger rows onto modelled transaction types."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Sequence, Tuple

from .models import ClassifiedTransaction, RawTransaction, TransactionType

logger = logging.getLogger(__name__)


def _matches(*needles: str) -> Callable[[str], bool]:
    return lambda action: any(needle in action for needle in needles)


# Evaluated in order; the first predicate that matches decides the type.
# Transfers resolve their direction from the sign of the amount.
CLASSIFICATION_RULES: Sequence[Tuple[Callable[[str], bool], TransactionType | None]] = (
    (_matches("dividend", "interest"), TransactionType.DIVIDEND),
    (_matches("moneylink", "transfer"), None),
    (_matches("buy"), TransactionType.BUY),
    (_matches("sell"), TransactionType.SELL),
    (_matches("advisor fee", "mgmtfee"), TransactionType.FEE),
)


def resolve_type(action: str, amount: float) -> TransactionType | None:
    """Return the transaction type for ``action`` or ``None`` to discard the row."""

    normalized = (action or "").lower()
    for predicate, tx_type in CLASSIFICATION_RULES:
        if not predicate(normalized):
            continue
        if tx_type is None:
            return TransactionType.DEPOSIT if amount > 0 else TransactionType.WITHDRAWAL
        return tx_type
    return None


def classify_transaction(raw: RawTransaction) -> ClassifiedTransaction | None:
    tx_type = resolve_type(raw.action, raw.gross_amount)
    if tx_type is None:
        logger.debug("Discarding unmodelled action %r on %s", raw.action, raw.date.isoformat())
        return None
    return ClassifiedTransaction(
        id=f"{raw.date.isoformat()}_{raw.row_number}",
        date=raw.date,
        type=tx_type,
        description=f"{raw.action} {raw.description}".strip(),
        amount=raw.gross_amount,
        fees=raw.fee_amount,
        symbol=raw.symbol or None,
        quantity=raw.quantity or None,
        price=raw.price or None,
    )


def classify_rows(rows: Iterable[RawTransaction]) -> List[ClassifiedTransaction]:
    """Classify ledger rows, newest first; unmodelled rows are dropped."""

    classified: List[ClassifiedTransaction] = []
    discarded = 0
    for raw in rows:
        tx = classify_transaction(raw)
        if tx is None:
            discarded += 1
            continue
        classified.append(tx)
    if discarded:
        logger.info("Discarded %d ledger rows with unmodelled actions", discarded)
    classified.sort(key=lambda tx: tx.date, reverse=True)
    return classified


def sort_ascending(transactions: Iterable[ClassifiedTransaction]) -> List[ClassifiedTransaction]:
    return sorted(transactions, key=lambda tx: tx.date)


__all__ = [
    "CLASSIFICATION_RULES",
    "classify_rows",
    "classify_transaction",
    "resolve_type",
    "sort_ascending",
]

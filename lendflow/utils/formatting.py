"""Display helpers for amounts and identifiers."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Union


def _plain(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{amount.normalize():f}"


def format_amount(value: Union[Decimal, int, str]) -> str:
    """Group thousands and drop trailing zeros: ``Decimal('10000') -> '10,000'``."""
    amount = Decimal(str(value))
    if amount == amount.to_integral_value():
        return f"{int(amount):,}"
    return f"{amount.normalize():,f}"


def short_id(object_id: str, length: int = 12) -> str:
    return f"{object_id[:length]}..."


def to_hex(text: str) -> str:
    return text.encode("utf-8").hex().upper()


def amount_value(field: Any) -> str:
    """Value of an amount field that may be an issued-currency object."""
    if isinstance(field, dict):
        return str(field.get("value", ""))
    return str(field)


def issued_amount(
    currency: str, issuer: str, value: Union[Decimal, int, str]
) -> Dict[str, str]:
    return {"currency": currency, "issuer": issuer, "value": _plain(Decimal(str(value)))}


def plain_amount(value: Union[Decimal, int, str]) -> str:
    return _plain(Decimal(str(value)))

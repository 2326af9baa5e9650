from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, DecimalException, Inexact, InvalidOperation, localcontext
from typing import Any, Dict, List

from quotation_engine.errors import ValidationError


CENTS = Decimal("0.01")
SCALAR_TERMS = ("delivery_time", "validity_period", "notes")
PERCENT_PRECISION = 60


def quantize_amount(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except DecimalException as exc:
        raise ValidationError(code="amount_invalid", message_key="amount_invalid") from exc


def format_amount(value: Any) -> str:
    return format(quantize_amount(value), "f")


def _parse_non_negative(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite() or parsed < 0:
        return None
    return parsed


def _invalid_line(idx: int | None) -> ValidationError:
    return ValidationError(
        code="line_item_invalid",
        message_key="line_item_invalid",
        payload={} if idx is None else {"line": idx},
    )


def _exact_sum(amounts: List[Decimal]) -> Decimal:
    """Sum and quantize to cents; raises DecimalException when digits would be lost."""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        total = Decimal("0")
        for amount in amounts:
            total += amount
        ctx.traps[Inexact] = False
        return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def _line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        amount = quantity * unit_price
    _exact_sum([amount])
    return amount


def normalize_line_items(raw_items: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError(code="line_items_required", message_key="line_items_required")
    items: List[Dict[str, Any]] = []
    for idx, item in enumerate(raw_items, start=1):
        if not isinstance(item, dict):
            raise _invalid_line(idx)
        quantity = _parse_non_negative(item.get("quantity"))
        unit_price = _parse_non_negative(item.get("unit_price"))
        if quantity is None or unit_price is None:
            raise _invalid_line(idx)
        try:
            _line_amount(quantity, unit_price)
        except DecimalException as exc:
            raise _invalid_line(idx) from exc
        items.append(dict(item))
    return items


def compute_total(line_items: List[Dict[str, Any]]) -> Decimal:
    amounts = []
    for idx, item in enumerate(line_items, start=1):
        quantity = _parse_non_negative(item.get("quantity")) or Decimal("0")
        unit_price = _parse_non_negative(item.get("unit_price")) or Decimal("0")
        try:
            amounts.append(_line_amount(quantity, unit_price))
        except DecimalException as exc:
            raise _invalid_line(idx) from exc
    try:
        return _exact_sum(amounts)
    except DecimalException as exc:
        raise _invalid_line(None) from exc


def percentage_change(old_amount: Any, new_amount: Any) -> Decimal | None:
    """Relative change from ``old_amount`` in percent, or None on a zero baseline."""
    old_value = Decimal(str(old_amount))
    if old_value == 0:
        return None
    with localcontext() as ctx:
        # Totals fit in 28 digits; their ratio in percent can need a few more.
        ctx.prec = PERCENT_PRECISION
        delta = Decimal(str(new_amount)) - old_value
        return (delta / old_value * 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def _item_key(item: Dict[str, Any], position: int) -> str:
    description = str(item.get("description") or "").strip()
    return description or f"#{position}"


def diff_line_items(old_items: List[Dict[str, Any]], new_items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    old_map = {_item_key(item, idx): item for idx, item in enumerate(old_items, start=1)}
    new_map = {_item_key(item, idx): item for idx, item in enumerate(new_items, start=1)}

    added = [new_map[key] for key in new_map if key not in old_map]
    removed = [old_map[key] for key in old_map if key not in new_map]
    changed: List[Dict[str, Any]] = []
    for key, new_item in new_map.items():
        old_item = old_map.get(key)
        if old_item is None or old_item == new_item:
            continue
        fields = {}
        for field in sorted(set(old_item) | set(new_item)):
            if old_item.get(field) != new_item.get(field):
                fields[field] = {"from": old_item.get(field), "to": new_item.get(field)}
        changed.append({"item": key, "changes": fields})
    return {"added": added, "removed": removed, "changed": changed}


def diff_terms(old_revision: Dict[str, Any], new_revision: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    changes: Dict[str, Dict[str, Any]] = {}
    for field in SCALAR_TERMS:
        if old_revision.get(field) != new_revision.get(field):
            changes[field] = {"from": old_revision.get(field), "to": new_revision.get(field)}
    return changes

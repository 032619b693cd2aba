"""
Normalization of raw bridge payloads.

The bridge relays each platform's own JSON. Zomato payloads carry the
order detail under "order" plus the dashboard bucket as "bucketStatus";
Swiggy payloads are flat. Both are reduced to an ExternalOrder.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from shared.config.constants import Platform
from shared.config.logging import aggregator_logger as logger
from shared.utils.exceptions import ValidationError
from shared.utils.money import parse_amount, to_money

ZOMATO_DEFAULT_CUSTOMER = "Zomato Customer"
DEFAULT_CUSTOMER = "Online Customer"
ONLINE_CATEGORY = "online"


@dataclass
class ExternalItem:
    name: str
    unit_price: Decimal
    quantity: int = 1


@dataclass
class ExternalOrder:
    """An aggregator order in platform-neutral form."""

    external_id: str
    external_outlet_id: str
    platform: str
    raw_status: str | None
    total_amount: Decimal
    customer_name: str
    customer_phone: str | None = None
    instructions: str | None = None
    items: list[ExternalItem] = field(default_factory=list)


def _dig(data: Any, *keys: str) -> Any:
    """Nested dict lookup that tolerates missing levels."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _quantity(raw: Any) -> int:
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1


def _zomato_instructions(details: dict[str, Any]) -> tuple[str | None, str | None]:
    """Order messages plus rider contact, and the rider's phone."""
    messages = [
        _dig(message, "value", "message")
        for message in details.get("orderMessages") or []
    ]
    text = ", ".join(m for m in messages if m)

    riders = details.get("supportingRiderDetails") or []
    rider = riders[0] if riders and isinstance(riders[0], dict) else {}
    rider_name = rider.get("name") or ""
    rider_phone = rider.get("phone") or ""
    if rider_name:
        text += (". " if text else "") + f"Rider: {rider_name}"
    if rider_phone:
        text += f" ({rider_phone})"
    return text or None, rider_phone or None


def normalize_zomato(payload: dict[str, Any]) -> ExternalOrder:
    details = payload.get("order") or {}
    if details.get("id") is None:
        raise ValidationError("Zomato payload without order id")

    amounts = _dig(details, "cartDetails", "total", "amountDetails") or {}
    total = amounts.get("amountTotalCost")
    if total is None:
        total = amounts.get("totalCost")

    creator = details.get("creator") or {}
    creator_phone = None
    if creator.get("phone"):
        creator_phone = f"{creator.get('countryIsdCode') or ''}{creator['phone']}"
    instructions, rider_phone = _zomato_instructions(details)

    dishes = _dig(details, "cartDetails", "items", "dishes") or []
    items = [
        ExternalItem(
            name=dish.get("name") or "Item",
            unit_price=to_money(parse_amount(dish.get("unitCost"))),
            quantity=_quantity(dish.get("quantity")),
        )
        for dish in dishes
    ]

    return ExternalOrder(
        external_id=str(details["id"]),
        external_outlet_id=str(details.get("resId") or ""),
        platform=Platform.ZOMATO,
        raw_status=payload.get("bucketStatus") or details.get("state"),
        total_amount=to_money(parse_amount(total)),
        customer_name=creator.get("name") or ZOMATO_DEFAULT_CUSTOMER,
        customer_phone=rider_phone or creator_phone,
        instructions=instructions,
        items=items,
    )


def normalize_flat(payload: dict[str, Any], platform: str) -> ExternalOrder:
    """Swiggy, and any platform relayed in the same flat shape."""
    if payload.get("id") is None:
        raise ValidationError(f"{platform} payload without order id")

    items: list[ExternalItem] = []
    if payload.get("items"):
        items = [
            ExternalItem(
                name=item.get("name") or "Item",
                unit_price=to_money(parse_amount(item.get("price"))),
                quantity=_quantity(item.get("quantity")),
            )
            for item in payload["items"]
        ]
    elif _dig(payload, "cart", "items"):
        for item in payload["cart"]["items"]:
            quantity = _quantity(item.get("quantity"))
            items.append(
                ExternalItem(
                    name=item.get("name") or "Item",
                    unit_price=to_money(parse_amount(item.get("total")) / quantity),
                    quantity=quantity,
                )
            )

    customer = payload.get("customer") or {}
    return ExternalOrder(
        external_id=str(payload["id"]),
        external_outlet_id=str(payload.get("restaurant_id") or ""),
        platform=platform,
        raw_status=payload.get("status"),
        total_amount=to_money(parse_amount(_dig(payload, "details", "order_total"))),
        customer_name=customer.get("name") or DEFAULT_CUSTOMER,
        customer_phone=customer.get("phone") or None,
        instructions=payload.get("instructions") or None,
        items=items,
    )


def normalize_order(payload: dict[str, Any]) -> ExternalOrder:
    """
    Normalize one raw payload tagged with its "platform".

    Raises:
        ValidationError: the payload has no order id.
    """
    platform = (payload.get("platform") or "unknown").lower()
    if platform == Platform.ZOMATO and isinstance(payload.get("order"), dict):
        external = normalize_zomato(payload)
    else:
        external = normalize_flat(payload, platform)

    if not external.items:
        logger.warning(
            "External order without items",
            platform=platform,
            external_order_id=external.external_id,
            payload_keys=sorted(payload),
        )
    return external

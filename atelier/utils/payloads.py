"""Helpers shared by the JSON blueprints to read request bodies."""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from flask import request

from atelier.exceptions import InvalidArgumentError
from atelier.services.pricing_service import DiscountDirective, discount_from_fields
from atelier.utils.number_format import parse_decimal, parse_int

QUANTITY_DECIMALS = 3


def get_json_body() -> Dict[str, Any]:
    """Return the request JSON object, or raise 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgumentError('Request body must be a JSON object')
    return data


def parse_discount(data: Dict[str, Any]) -> DiscountDirective:
    """Build the discount directive from `discountPercentage` / `finalPrice`."""
    percentage = parse_decimal(data.get('discountPercentage'), 'discountPercentage', required=False)
    final_price = parse_decimal(data.get('finalPrice'), 'finalPrice', required=False)
    return discount_from_fields(percentage, final_price)


def has_discount(data: Dict[str, Any]) -> bool:
    return data.get('discountPercentage') is not None or data.get('finalPrice') is not None


def parse_items(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Parse `items: [{productId, quantity}]`."""
    items = data.get('items')
    if items is None:
        return []
    if not isinstance(items, list):
        raise InvalidArgumentError('items must be a list')

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidArgumentError(f'items[{index}] must be an object')
        parsed.append({
            'product_id': parse_int(item.get('productId'), f'items[{index}].productId'),
            'quantity': parse_decimal(
                item.get('quantity'), f'items[{index}].quantity', max_decimals=QUANTITY_DECIMALS
            ),
        })
    return parsed


def parse_date(value, field: str) -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD)."""
    if value is None or value == '':
        return None
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise InvalidArgumentError(f'{field} must be a date in YYYY-MM-DD format')

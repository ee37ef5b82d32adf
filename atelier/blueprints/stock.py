"""Stock management blueprint: manual stock changes and low-stock alerts."""
from flask import Blueprint, current_app, g, jsonify, request

from atelier.database import get_session
from atelier.exceptions import InvalidArgumentError
from atelier.middleware import require_login
from atelier.models import StockUpdateType
from atelier.services import stock_service
from atelier.utils.number_format import parse_int
from atelier.utils.payloads import get_json_body

stock_bp = Blueprint('stock', __name__, url_prefix='/stock-management')


def _parse_update_type(value) -> StockUpdateType:
    try:
        return StockUpdateType(str(value).strip().upper())
    except (ValueError, AttributeError):
        raise InvalidArgumentError(f'Invalid update type: {value}. Use ADD, REMOVE or SET')


def _parse_stock_update(data, prefix: str = ''):
    return {
        'product_id': parse_int(data.get('productId'), f'{prefix}productId'),
        'quantity': parse_int(data.get('quantity'), f'{prefix}quantity'),
        'update_type': _parse_update_type(data.get('updateType')),
    }


@stock_bp.route('/update-stock', methods=['PATCH'])
@require_login
def update_stock():
    update = _parse_stock_update(get_json_body())
    adjustment = stock_service.update_product_stock(
        get_session(),
        update['product_id'],
        update['quantity'],
        update['update_type'],
        updated_by=g.username
    )
    return jsonify(adjustment.to_dict())


@stock_bp.route('/bulk-update-stock', methods=['PATCH'])
@require_login
def bulk_update_stock():
    """Apply several stock updates; each item succeeds or fails on its own."""
    data = get_json_body()
    updates = data.get('updates')
    if not isinstance(updates, list) or not updates:
        raise InvalidArgumentError('updates must be a non-empty list')

    parsed = [_parse_stock_update(item, f'updates[{i}].') for i, item in enumerate(updates)]
    results = stock_service.bulk_update_stock(get_session(), parsed, updated_by=g.username)

    failed = sum(1 for r in results if not r['success'])
    if failed:
        current_app.logger.warning(f"Bulk stock update by {g.username}: {failed}/{len(results)} failed")

    return jsonify({
        'results': results,
        'successCount': len(results) - failed,
        'failureCount': failed,
    })


@stock_bp.route('/update-stock-limit', methods=['PATCH'])
@require_login
def update_stock_limit():
    data = get_json_body()
    product = stock_service.update_low_stock_alert(
        get_session(),
        parse_int(data.get('productId'), 'productId'),
        parse_int(data.get('lowStockAlert'), 'lowStockAlert')
    )
    return jsonify(stock_service.stock_row(product))


@stock_bp.route('/low-stock', methods=['GET'])
@require_login
def low_stock():
    limit = parse_int(request.args.get('limit'), 'limit', required=False)
    products = stock_service.get_low_stock_products(get_session(), limit=limit)
    return jsonify({'products': products, 'count': len(products)})


@stock_bp.route('/negative-stock', methods=['GET'])
@require_login
def negative_stock():
    products = stock_service.get_negative_stock_products(get_session())
    return jsonify({'products': products, 'count': len(products)})


@stock_bp.route('/update-types', methods=['GET'])
@require_login
def update_types():
    return jsonify(stock_service.get_stock_update_types())

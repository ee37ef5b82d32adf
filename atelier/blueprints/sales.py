"""Sales blueprint: sale detail, header update and deletion."""
from flask import Blueprint, current_app, g, jsonify

from atelier.database import get_session
from atelier.decorators.permissions import require_role
from atelier.exceptions import InvalidArgumentError
from atelier.middleware import require_login
from atelier.services import sales_service
from atelier.services.sale_delete_service import delete_sale_with_reversal
from atelier.services.sales_service import SaleUpdate
from atelier.utils.number_format import parse_decimal, parse_int
from atelier.utils.payloads import get_json_body, has_discount, parse_date, parse_discount

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


@sales_bp.route('/<int:sale_id>/details', methods=['GET'])
@require_login
def detail_sale(sale_id: int):
    return jsonify(sales_service.get_sale_detail(get_session(), sale_id))


@sales_bp.route('/<int:sale_id>', methods=['PUT'])
@require_login
def update_sale(sale_id: int):
    """Update header fields of a sale. Lines and channel cannot change."""
    data = get_json_body()

    body_sale_id = parse_int(data.get('saleId'), 'saleId', required=False)
    if body_sale_id is not None and body_sale_id != sale_id:
        raise InvalidArgumentError(
            f'Sale id in body ({body_sale_id}) does not match sale id in path ({sale_id})',
            status_code=403
        )

    if 'isWholesale' in data or 'items' in data:
        raise InvalidArgumentError('Sale channel and lines cannot be changed')

    update = SaleUpdate(
        customer_id=parse_int(data.get('customerId'), 'customerId', required=False),
        location_id=parse_int(data.get('locationId'), 'locationId', required=False),
        payment_method=data.get('paymentMethod'),
        sale_date=parse_date(data.get('saleDate'), 'saleDate'),
        packaging_cost=parse_decimal(data.get('packagingCost'), 'packagingCost', required=False),
        discount=parse_discount(data) if has_discount(data) or data.get('clearDiscount') else None,
        updated_by=g.username
    )

    db_session = get_session()
    sale = sales_service.update_sale(db_session, sale_id, update)
    return jsonify(sales_service.sale_detail(db_session, sale))


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@require_login
@require_role('ADMIN')
def delete_sale(sale_id: int):
    """Delete a sale and restore its stock. Admin only."""
    result = delete_sale_with_reversal(get_session(), sale_id, deleted_by=g.username)
    current_app.logger.info(
        f"Sale #{sale_id} deleted via API by {g.username}, {len(result['restored'])} product(s) restocked"
    )
    return '', 204

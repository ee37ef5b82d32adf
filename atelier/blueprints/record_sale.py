"""Record sale blueprint: cart preview, pricing and sale recording."""
from decimal import Decimal

from flask import Blueprint, current_app, g, jsonify, request

from atelier.blueprints.metrics import sales_recorded_total
from atelier.database import get_session
from atelier.middleware import require_login
from atelier.services import cart_service, sales_service
from atelier.services.sales_service import RecordSaleRequest, SaleItem
from atelier.utils.number_format import parse_bool, parse_decimal, parse_int
from atelier.utils.payloads import QUANTITY_DECIMALS, get_json_body, parse_date, parse_discount, parse_items

record_sale_bp = Blueprint('record_sale', __name__, url_prefix='/record-sale')


@record_sale_bp.route('/init', methods=['GET'])
@require_login
def init():
    """Data needed to open the record sale screen."""
    db_session = get_session()
    return jsonify({
        'paymentMethods': sales_service.list_payment_methods(),
        'locations': sales_service.list_active_locations(db_session),
    })


@record_sale_bp.route('/products/<int:product_id>/cart-item', methods=['GET'])
@require_login
def cart_item(product_id: int):
    """Resolve a product and quantity into a priced cart line. No stock is reserved."""
    quantity = parse_decimal(request.args.get('quantity', '1'), 'quantity', max_decimals=QUANTITY_DECIMALS)
    is_wholesale = parse_bool(request.args.get('isWholesale'), 'isWholesale')

    line = cart_service.resolve_cart_item(get_session(), product_id, quantity, is_wholesale)
    return jsonify(line.to_dict())


@record_sale_bp.route('/calculate-pricing', methods=['POST'])
@require_login
def calculate_pricing():
    """Price a cart without writing anything."""
    data = get_json_body()
    result = cart_service.calculate_cart_pricing(
        get_session(),
        parse_items(data),
        is_wholesale=parse_bool(data.get('isWholesale'), 'isWholesale'),
        packaging_cost=parse_decimal(data.get('packagingCost'), 'packagingCost', required=False) or Decimal('0'),
        discount=parse_discount(data)
    )
    return jsonify(result.to_dict())


@record_sale_bp.route('/record', methods=['POST'])
@require_login
def record():
    """Record a sale, decrement stock and return the sale detail."""
    data = get_json_body()
    db_session = get_session()

    sale_request = RecordSaleRequest(
        location_id=parse_int(data.get('locationId'), 'locationId'),
        payment_method=data.get('paymentMethod'),
        items=[SaleItem(item['product_id'], item['quantity']) for item in parse_items(data)],
        is_wholesale=parse_bool(data.get('isWholesale'), 'isWholesale'),
        packaging_cost=parse_decimal(data.get('packagingCost'), 'packagingCost', required=False) or Decimal('0'),
        discount=parse_discount(data),
        customer_id=parse_int(data.get('customerId'), 'customerId', required=False),
        sale_date=parse_date(data.get('saleDate'), 'saleDate'),
        created_by=g.username
    )

    sale = sales_service.record_sale(db_session, sale_request)
    sales_recorded_total.labels(channel='wholesale' if sale.is_wholesale else 'retail').inc()
    current_app.logger.info(f"Sale #{sale.id} recorded via API by {g.username}")

    return jsonify(sales_service.sale_detail(db_session, sale)), 201

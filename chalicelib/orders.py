import hashlib
import json
import os
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from chalice import Response

from chalicelib.addresses import Address, AddressBook
from chalicelib.base_class_entity import EntityBase
from chalicelib.carts import Cart, CartLine, CART_REPLACED
from chalicelib.constants.constants import DEFAULT_ESTIMATED_DELIVERY_MINUTES, DEFAULT_ORDERS_LIST_LIMIT, \
    DEFAULT_PAYMENT_METHOD, MISSING_ADDRESS_MESSAGE, PAYMENT_METHODS
from chalicelib.constants.status_codes import http200
from chalicelib.menu_items import MenuItem, find_menu_item
from chalicelib.order_status import OrderStatus, map_status, status_label, remote_status_label, is_terminal, \
    progress
from chalicelib.restaurants import Restaurant
from chalicelib.utils import app as utils_app, auth as utils_auth, data as utils_data, exceptions
from chalicelib.utils.cache import CACHE_WRITE_ERRORS
from chalicelib.utils.data import parse_timestamp, to_iso, to_money, utc_now
from chalicelib.utils.logger import logger, log_exception


def platform_fee() -> Decimal:
    return to_money(os.environ.get('PLATFORM_FEE'), Decimal('0.00'))


def estimated_delivery_minutes() -> int:
    return int(os.environ.get('ESTIMATED_DELIVERY_MINUTES', DEFAULT_ESTIMATED_DELIVERY_MINUTES))


def orders_list_limit() -> int:
    return int(os.environ.get('ORDERS_LIST_LIMIT', DEFAULT_ORDERS_LIST_LIMIT))


class OrderLine:
    def __init__(self, menu_item: MenuItem, quantity: int):
        self.menu_item: MenuItem = menu_item
        self.quantity: int = int(quantity)

    @classmethod
    def from_cart_line(cls, line: CartLine):
        return cls(line.menu_item.snapshot(), line.quantity)

    @classmethod
    def from_api(cls, record: Dict, restaurant_id=None):
        return cls(MenuItem.from_api(record, restaurant_id=restaurant_id), record.get('quantity', 1))

    def to_api(self) -> Dict:
        return {
            'itemId': self.menu_item.id_,
            'name': self.menu_item.name,
            'quantity': self.quantity,
            'price': self.menu_item.price
        }

    def to_dict(self) -> Dict:
        return {'menu_item': self.menu_item.to_dict(), 'quantity': self.quantity}

    @classmethod
    def from_dict(cls, record: Dict):
        return cls(MenuItem.from_dict(record['menu_item']), record['quantity'])

    def to_ui(self) -> Dict:
        return {'menu_item': self.menu_item.to_ui(), 'quantity': self.quantity}


class Order(EntityBase):
    """
    Client copy of a placed order. Everything but the status is a snapshot taken at submission time.
    """

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_)

        lines = kwargs.get('lines') or []
        delivery_address = kwargs.get('delivery_address')

        self.restaurant_id: str = kwargs.get('restaurant_id')
        self.restaurant_name: str = kwargs.get('restaurant_name') or ''
        self.restaurant_image: str = kwargs.get('restaurant_image') or ''
        self.lines: List[OrderLine] = [line if isinstance(line, OrderLine) else OrderLine.from_dict(line)
                                       for line in lines]
        self.food_total: Decimal = to_money(kwargs.get('food_total'),
                                            sum((line.menu_item.price * line.quantity for line in self.lines),
                                                Decimal('0.00')))
        self.delivery_fee: Decimal = to_money(kwargs.get('delivery_fee'), Decimal('0.00'))
        self.platform_fee: Decimal = to_money(kwargs.get('platform_fee'), Decimal('0.00'))
        self.total_amount: Decimal = to_money(kwargs.get('total_amount'),
                                              self.food_total + self.delivery_fee + self.platform_fee)
        self.remote_status: Optional[str] = kwargs.get('remote_status')
        self.status: OrderStatus = map_status(kwargs.get('status') or self.remote_status)
        self.delivery_address: Optional[Address] = Address.from_dict(delivery_address) \
            if isinstance(delivery_address, dict) else delivery_address
        self.order_date: datetime = parse_timestamp(kwargs.get('order_date')) or utc_now()
        self.estimated_delivery_time: Optional[datetime] = parse_timestamp(kwargs.get('estimated_delivery_time'))
        self.payment_method: str = kwargs.get('payment_method') or DEFAULT_PAYMENT_METHOD
        self.record_type = 'order'

    @classmethod
    def from_record(cls, record: Dict, snapshot: Optional['Order'] = None):
        """
        Builds the order from an order store record, the local snapshot (if any) supplies
        what the store does not keep: restaurant name/image, full menu items and the delivery address
        """
        restaurant_id = record.get('restaurantId') or (snapshot.restaurant_id if snapshot else None)
        if snapshot is not None and snapshot.lines:
            lines = snapshot.lines
        else:
            lines = [OrderLine.from_api(item, restaurant_id=restaurant_id) for item in record.get('items', [])]
        order_date = parse_timestamp(record.get('createdAt')) or (snapshot.order_date if snapshot else None) \
            or utc_now()
        estimated = parse_timestamp(record.get('estimatedDeliveryTime')) or \
            (snapshot.estimated_delivery_time if snapshot else None) or \
            order_date + timedelta(minutes=estimated_delivery_minutes())

        def pick(remote_key, local_attr):
            if record.get(remote_key) is not None:
                return record.get(remote_key)
            return getattr(snapshot, local_attr) if snapshot else None

        return cls(
            id_=str(record.get('orderId') or record.get('id')),
            restaurant_id=restaurant_id,
            restaurant_name=record.get('restaurantName') or (snapshot.restaurant_name if snapshot else None),
            restaurant_image=record.get('restaurantImage') or (snapshot.restaurant_image if snapshot else None),
            lines=lines,
            food_total=pick('foodTotal', 'food_total'),
            delivery_fee=pick('deliveryFee', 'delivery_fee'),
            platform_fee=pick('platformFee', 'platform_fee'),
            total_amount=pick('grandTotal', 'total_amount'),
            remote_status=record.get('status'),
            delivery_address=snapshot.delivery_address if snapshot else None,
            order_date=order_date,
            estimated_delivery_time=estimated,
            payment_method=pick('paymentMethod', 'payment_method')
        )

    def _to_dict(self):
        return {
            'id_': self.id_,
            'restaurant_id': self.restaurant_id,
            'restaurant_name': self.restaurant_name,
            'restaurant_image': self.restaurant_image,
            'lines': [line.to_dict() for line in self.lines],
            'food_total': self.food_total,
            'delivery_fee': self.delivery_fee,
            'platform_fee': self.platform_fee,
            'total_amount': self.total_amount,
            'status': self.status.value,
            'remote_status': self.remote_status,
            'delivery_address': self.delivery_address.to_dict() if self.delivery_address else None,
            'order_date': to_iso(self.order_date),
            'estimated_delivery_time': to_iso(self.estimated_delivery_time),
            'payment_method': self.payment_method
        }

    def _to_ui(self):
        item = super()._to_ui()
        item['items'] = [line.to_ui() for line in self.lines]
        del item['lines']
        item['delivery_address'] = self.delivery_address.to_ui() if self.delivery_address else None
        item['status_label'] = status_label(self.status)
        item['remote_status_label'] = remote_status_label(self.remote_status or self.status)
        item['is_terminal'] = is_terminal(self.status)
        item['progress'] = progress(self.status)
        return item


def sort_orders(orders: List[Order]) -> List[Order]:
    return sorted(orders, key=lambda order: order.order_date, reverse=True)


class OrderSubmission:
    """
    Turns a cart snapshot into an order in the order store.
    Cart clearing and caching of the new order happen only after the store confirmed the order.
    """

    def __init__(self, session, order_store, platform_fee_amount: Optional[Decimal] = None):
        self.session = session
        self.order_store = order_store
        self.platform_fee = platform_fee_amount if platform_fee_amount is not None else platform_fee()

    @staticmethod
    def _validate(cart_lines: List[CartLine], restaurant: Restaurant, delivery_address: Address, payment_method):
        if not cart_lines:
            raise exceptions.InvalidRequest('Your cart is empty')
        if restaurant is None:
            raise exceptions.InvalidRequest('Restaurant is required to place an order')
        if delivery_address is None:
            raise exceptions.InvalidRequest(MISSING_ADDRESS_MESSAGE)
        if any(line.restaurant.id_ != restaurant.id_ for line in cart_lines):
            raise exceptions.InvalidRequest('All items of an order must come from one restaurant')
        if any(line.quantity < 1 for line in cart_lines):
            raise exceptions.InvalidRequest('Item quantity must be at least 1')
        if payment_method not in PAYMENT_METHODS:
            raise exceptions.InvalidRequest(f'Unknown payment method {payment_method}')

    @staticmethod
    def _fingerprint(lines: List[OrderLine], restaurant: Restaurant, delivery_address: Address, payment_method):
        payload = {
            'restaurant_id': restaurant.id_,
            'lines': [[line.menu_item.id_, line.quantity, str(line.menu_item.price)] for line in lines],
            'address_id': delivery_address.id_,
            'payment_method': payment_method
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode('utf-8')).hexdigest()

    def _idempotency_key(self, fingerprint: str) -> str:
        """
        The same cart resubmitted after a failure reuses its key, so the store can drop duplicates
        """
        with self.session.lock:
            pending = self.session.pending_submission()
            if pending.get('fingerprint') == fingerprint:
                logger.info(f'OrderSubmission ::: reusing idempotency key {pending["key"]}')
                return pending['key']
            key = str(uuid4())
            self.session.set_pending_submission({'fingerprint': fingerprint, 'key': key})
            return key

    def place_order(self, cart_lines: List[CartLine], restaurant: Restaurant, delivery_address: Address,
                    subtotal, delivery_fee, payment_method: str = DEFAULT_PAYMENT_METHOD) -> Order:
        self._validate(cart_lines, restaurant, delivery_address, payment_method)

        lines = [OrderLine.from_cart_line(line) for line in cart_lines]
        address_snapshot: Address = delivery_address.snapshot()
        food_total = to_money(subtotal)
        delivery_fee = to_money(delivery_fee, Decimal('0.00'))
        idempotency_key = self._idempotency_key(
            self._fingerprint(lines, restaurant, address_snapshot, payment_method))

        try:
            record = self.order_store.create_order(
                customer_id=self.session.customer_id,
                restaurant_id=restaurant.id_,
                items=[line.to_api() for line in lines],
                food_total=food_total,
                delivery_fee=delivery_fee,
                platform_fee=self.platform_fee,
                idempotency_key=idempotency_key
            )
        except (exceptions.RemoteAPIError, exceptions.NotFound) as error:
            logger.error(f'place_order ::: order store rejected the order, cart is kept, {error=}')
            raise exceptions.OrderSubmissionFailed(f'Order submission failed: {error}', cause=error) from error

        if not record or not (record.get('orderId') or record.get('id')):
            raise exceptions.OrderSubmissionFailed('Order store did not return an order id')

        local = Order(
            id_=None,
            restaurant_id=restaurant.id_,
            restaurant_name=restaurant.name,
            restaurant_image=restaurant.image,
            lines=lines,
            food_total=food_total,
            delivery_fee=delivery_fee,
            platform_fee=self.platform_fee,
            delivery_address=address_snapshot,
            payment_method=payment_method
        )
        order = Order.from_record(record, snapshot=local)

        with self.session.lock:
            try:
                self.session.cart.clear_cart()
                cached = [item for item in self.session.cached_orders() if item.get('id_') != order.id_]
                self.session.cache_orders(([order.to_dict()] + cached)[:orders_list_limit()])
                self.session.set_pending_submission(None)
            except CACHE_WRITE_ERRORS as error:
                log_exception(error, msg=f'place_order ::: order {order.id_} placed, session cache update failed: ')
        logger.info(f'place_order ::: order {order.id_} placed, total_amount={order.total_amount}')
        return order


class OrderTracker:
    """
    Read side of the order lifecycle: pull-based refresh from the order store with the cached list as fallback
    """

    def __init__(self, session, order_store, catalog=None):
        self.session = session
        self.order_store = order_store
        self.catalog = catalog

    def _cached_by_id(self) -> Dict[str, Order]:
        orders = {}
        for record in self.session.cached_orders():
            try:
                order = Order.from_dict(record)
            except (KeyError, TypeError, ValueError) as error:
                logger.warning(f'OrderTracker ::: skipping unreadable cached order, {error=}')
                continue
            orders[order.id_] = order
        return orders

    def _store_in_cache(self, orders: List[Order]):
        """
        Merges fresh orders into the cached list, only the newest orders_list_limit() are kept
        """
        with self.session.lock:
            merged = self._cached_by_id()
            merged.update({order.id_: order for order in orders})
            newest = sort_orders(list(merged.values()))[:orders_list_limit()]
            try:
                self.session.cache_orders([order.to_dict() for order in newest])
            except CACHE_WRITE_ERRORS as error:
                log_exception(error, msg='OrderTracker ::: caching orders failed: ')

    def get_order(self, order_id) -> Order:
        cached = self._cached_by_id().get(order_id)
        try:
            record = self.order_store.get_order(order_id)
        except exceptions.RemoteAPIError as error:
            if cached is None:
                raise
            logger.warning(f'OrderTracker.get_order ::: order store unavailable, using cached {order_id}, {error=}')
            return cached
        order = Order.from_record(record, snapshot=cached)
        self._store_in_cache([order])
        return order

    def list_orders(self, limit: Optional[int] = None) -> List[Order]:
        if limit is None:
            limit = orders_list_limit()
        if limit < 1:
            raise exceptions.InvalidRequest('limit must be a positive integer')
        cached = self._cached_by_id()
        try:
            records = self.order_store.list_orders(self.session.customer_id, limit)
        except exceptions.RemoteAPIError as error:
            logger.warning(f'OrderTracker.list_orders ::: order store unavailable, using cached orders, {error=}')
            return sort_orders(list(cached.values()))[:limit]

        orders = []
        for record in records:
            order_id = str(record.get('orderId') or record.get('id'))
            orders.append(Order.from_record(record, snapshot=cached.get(order_id)))
        self._store_in_cache(orders)
        return sort_orders(orders)[:limit]

    def reorder(self, order_id) -> Tuple[Cart, List[str]]:
        """
        Rebuilds the session cart from a historical order against the current catalog.
        Missing and unavailable items are skipped, the cart is replaced as a whole.
        """
        order = self.get_order(order_id)
        try:
            restaurant: Restaurant = self.catalog.get_restaurant(order.restaurant_id)
            menu_items: List[MenuItem] = self.catalog.get_menu_items(order.restaurant_id)
        except (exceptions.NotFound, exceptions.RemoteAPIError) as error:
            raise exceptions.ReorderUnavailable(
                f'Restaurant {order.restaurant_id} of order {order_id} can not be resolved') from error

        cart = Cart()
        skipped = []
        for line in order.lines:
            menu_item = find_menu_item(menu_items, line.menu_item.id_)
            if menu_item is None or not menu_item.is_available_right_now():
                skipped.append(line.menu_item.id_)
                continue
            for _ in range(line.quantity):
                cart.add_item(menu_item, restaurant)

        with self.session.lock:
            self.session.replace_cart(cart, CART_REPLACED)
        logger.info(f'reorder ::: order {order_id} reordered, {skipped=}')
        return cart, skipped


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_get_orders(request, registry) -> Response:
    qp = request.query_params or {}
    try:
        limit = int(qp['limit']) if qp.get('limit') else None
    except ValueError:
        raise exceptions.InvalidRequest('limit must be an integer')
    session = registry.session(request.auth_result['customer_id'])
    orders = OrderTracker(session, registry.order_store).list_orders(limit)
    return Response(status_code=http200, body={'orders': [order.to_ui() for order in orders]})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_get_order(request, registry, order_id) -> Response:
    session = registry.session(request.auth_result['customer_id'])
    order = OrderTracker(session, registry.order_store).get_order(order_id)
    return Response(status_code=http200, body=order.to_ui())


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_place_order(request, registry) -> Response:
    request_body = utils_data.parse_raw_body(request)
    session = registry.session(request.auth_result['customer_id'])
    address_book = AddressBook(session, registry.address_store)

    address_id = request_body.get('address_id')
    delivery_address = address_book.get_address(address_id) if address_id else address_book.selected_address()

    with session.lock:
        cart = session.cart
        cart_lines, restaurant = list(cart.lines), cart.restaurant
        subtotal, delivery_fee = cart.subtotal, cart.delivery_fee

    order = OrderSubmission(session, registry.order_store).place_order(
        cart_lines, restaurant, delivery_address, subtotal, delivery_fee,
        payment_method=request_body.get('payment_method', DEFAULT_PAYMENT_METHOD)
    )
    return Response(status_code=http200, body={
        'order': order.to_ui(),
        'message': f'Your order #{order.id_} has been placed successfully'
    })


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_reorder(request, registry, order_id) -> Response:
    session = registry.session(request.auth_result['customer_id'])
    cart, skipped = OrderTracker(session, registry.order_store, registry.catalog).reorder(order_id)
    message = 'Some items are no longer available and were not added to the cart' if skipped else None
    return Response(status_code=http200, body={
        'cart': cart.to_ui(),
        'skipped_item_ids': skipped,
        'message': message
    })

from decimal import Decimal
from typing import Callable, Dict, List, Optional

from chalice import Response

from chalicelib.constants.status_codes import http200
from chalicelib.menu_items import MenuItem, find_menu_item
from chalicelib.restaurants import Restaurant
from chalicelib.utils import app as utils_app, auth as utils_auth, data as utils_data, exceptions
from chalicelib.utils.logger import logger

ITEM_ADDED = 'item_added'
ITEM_REMOVED = 'item_removed'
RESTAURANT_SWITCHED = 'restaurant_switched'
CART_CLEARED = 'cart_cleared'
CART_REPLACED = 'cart_replaced'


class CartLine:
    def __init__(self, menu_item: MenuItem, quantity: int, restaurant: Restaurant):
        self.menu_item: MenuItem = menu_item
        self.quantity: int = quantity
        self.restaurant: Restaurant = restaurant

    @property
    def line_total(self) -> Decimal:
        return self.menu_item.price * self.quantity

    def to_dict(self) -> Dict:
        return {
            'menu_item': self.menu_item.to_dict(),
            'quantity': self.quantity,
            'restaurant': self.restaurant.to_dict()
        }

    @classmethod
    def from_dict(cls, record: Dict):
        return cls(
            menu_item=MenuItem.from_dict(record['menu_item']),
            quantity=int(record['quantity']),
            restaurant=Restaurant.from_dict(record['restaurant'])
        )

    def to_ui(self) -> Dict:
        return {
            'menu_item': self.menu_item.to_ui(),
            'quantity': self.quantity,
            'line_total': self.line_total
        }


class Cart:
    """
    Lines of a single restaurant. Totals are derived on every read.

    on_change(event, cart) is called after every mutation, it is the hook for
    persistence and for the tactile confirmation on the client.
    """

    def __init__(self, lines: Optional[List[CartLine]] = None, on_change: Optional[Callable] = None):
        self.lines: List[CartLine] = list(lines or [])
        self.on_change = on_change

    def _changed(self, event: str):
        logger.debug(f'Cart ::: {event}, item_count={self.item_count}')
        if self.on_change is not None:
            self.on_change(event, self)

    def _find_line(self, menu_item_id) -> Optional[CartLine]:
        return next((line for line in self.lines if line.menu_item.id_ == menu_item_id), None)

    def add_item(self, menu_item: MenuItem, restaurant: Restaurant) -> str:
        if self.lines and self.lines[0].restaurant.id_ != restaurant.id_:
            self.lines = [CartLine(menu_item, 1, restaurant)]
            self._changed(RESTAURANT_SWITCHED)
            return RESTAURANT_SWITCHED

        line = self._find_line(menu_item.id_)
        if line is not None:
            line.quantity += 1
        else:
            self.lines.append(CartLine(menu_item, 1, restaurant))
        self._changed(ITEM_ADDED)
        return ITEM_ADDED

    def remove_item(self, menu_item_id) -> Optional[str]:
        line = self._find_line(menu_item_id)
        if line is None:
            return None
        if line.quantity > 1:
            line.quantity -= 1
        else:
            self.lines.remove(line)
        self._changed(ITEM_REMOVED)
        return ITEM_REMOVED

    def clear_cart(self) -> str:
        self.lines = []
        self._changed(CART_CLEARED)
        return CART_CLEARED

    def get_item_quantity(self, menu_item_id) -> int:
        line = self._find_line(menu_item_id)
        return line.quantity if line is not None else 0

    def is_empty(self) -> bool:
        return not self.lines

    @property
    def restaurant(self) -> Optional[Restaurant]:
        return self.lines[0].restaurant if self.lines else None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal('0.00'))

    @property
    def delivery_fee(self) -> Decimal:
        return self.restaurant.delivery_fee if self.lines else Decimal('0.00')

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_fee

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def minimum_order_met(self) -> bool:
        return bool(self.lines) and self.subtotal >= self.restaurant.min_order

    def to_dict(self) -> Dict:
        return {'lines': [line.to_dict() for line in self.lines]}

    @classmethod
    def from_dict(cls, record: Optional[Dict], on_change: Optional[Callable] = None):
        lines = [CartLine.from_dict(line) for line in (record or {}).get('lines', [])]
        return cls(lines=lines, on_change=on_change)

    def to_ui(self) -> Dict:
        restaurant = self.restaurant
        return {
            'restaurant': restaurant.to_ui() if restaurant else None,
            'items': [line.to_ui() for line in self.lines],
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'total': self.total,
            'item_count': self.item_count,
            'minimum_order_met': self.minimum_order_met
        }


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_get_cart(request, registry) -> Response:
    session = registry.session(request.auth_result['customer_id'])
    return Response(status_code=http200, body={'cart': session.cart.to_ui()})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_add_item_to_cart(request, registry) -> Response:
    request_body = utils_data.parse_raw_body(request)
    restaurant_id = request_body.get('restaurant_id')
    menu_item_id = request_body.get('menu_item_id')
    if not restaurant_id or not menu_item_id:
        raise exceptions.InvalidRequest('restaurant_id and menu_item_id are required')

    restaurant: Restaurant = registry.catalog.get_restaurant(restaurant_id)
    menu_item: MenuItem = find_menu_item(registry.catalog.get_menu_items(restaurant_id), menu_item_id)
    if menu_item is None:
        raise exceptions.NotFound(f'Menu item {menu_item_id} not found in restaurant {restaurant_id}')
    if not menu_item.is_available_right_now():
        raise exceptions.InvalidRequest(f'{menu_item.name} is currently unavailable')

    session = registry.session(request.auth_result['customer_id'])
    with session.lock:
        event = session.cart.add_item(menu_item, restaurant)
        cart_ui = session.cart.to_ui()

    ui_message = None
    if event == RESTAURANT_SWITCHED:
        ui_message = f'Your previous cart was replaced with items from {restaurant.name}'
    return Response(status_code=http200, body={'cart': cart_ui, 'feedback': event, 'message': ui_message})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_remove_item_from_cart(request, registry, menu_item_id) -> Response:
    session = registry.session(request.auth_result['customer_id'])
    with session.lock:
        event = session.cart.remove_item(menu_item_id)
        cart_ui = session.cart.to_ui()
    return Response(status_code=http200, body={'cart': cart_ui, 'feedback': event})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_clear_cart(request, registry) -> Response:
    session = registry.session(request.auth_result['customer_id'])
    with session.lock:
        event = session.cart.clear_cart()
    return Response(status_code=http200, body={'message': 'Cart was successfully cleared', 'feedback': event})

from chalice import Chalice

from chalicelib import addresses, carts, menu_items, orders, restaurants
from chalicelib.sessions import SessionRegistry

app = Chalice(app_name='food-ordering-bff')

app.debug = True

services = SessionRegistry.from_environ()


@app.route('/health-check', methods=['GET'], cors=True)
def health_check():
    return {'health': 'check'}


# RESTAURANTS
@app.route('/restaurants', methods=['GET'], cors=True)
def get_restaurants():
    search = (app.current_request.query_params or {}).get('search')
    return restaurants.endpoint_get_all(services.catalog, search)


@app.route('/restaurants/{restaurant_id}', methods=['GET'], cors=True)
def get_restaurant_by_id(restaurant_id):
    return restaurants.endpoint_get_by_id(services.catalog, restaurant_id)


# MENU ITEMS
@app.route('/restaurants/{restaurant_id}/menu', methods=['GET'], cors=True)
def get_restaurant_menu(restaurant_id):
    return menu_items.endpoint_get_menu_items(services.catalog, restaurant_id)


# CART
@app.route('/carts', methods=['GET'], cors=True)
def get_cart():
    return carts.endpoint_get_cart(app.current_request, services)


@app.route('/carts', methods=['POST'], cors=True)
def add_item_to_cart():
    return carts.endpoint_add_item_to_cart(app.current_request, services)


@app.route('/carts/{menu_item_id}', methods=['DELETE'], cors=True)
def remove_item_from_cart(menu_item_id):
    return carts.endpoint_remove_item_from_cart(app.current_request, services, menu_item_id)


@app.route('/carts', methods=['DELETE'], cors=True)
def clear_cart():
    return carts.endpoint_clear_cart(app.current_request, services)


# ORDERS
@app.route('/orders', methods=['GET'], cors=True)
def get_orders():
    """
    customer's orders, newest first
    """
    return orders.endpoint_get_orders(app.current_request, services)


@app.route('/orders', methods=['POST'], cors=True)
def place_order():
    """
    order details are taken from the customer's cart,
    delivery address is the selected one unless address_id is given
    """
    return orders.endpoint_place_order(app.current_request, services)


@app.route('/orders/{order_id}', methods=['GET'], cors=True)
def get_order_by_id(order_id):
    return orders.endpoint_get_order(app.current_request, services, order_id)


@app.route('/orders/{order_id}/reorder', methods=['POST'], cors=True)
def reorder(order_id):
    """
    replaces the customer's cart with the still available items of the order
    """
    return orders.endpoint_reorder(app.current_request, services, order_id)


# ADDRESSES
@app.route('/addresses', methods=['GET'], cors=True)
def get_addresses():
    return addresses.endpoint_get_addresses(app.current_request, services)


@app.route('/addresses', methods=['POST'], cors=True)
def create_address():
    return addresses.endpoint_create_address(app.current_request, services)


@app.route('/addresses/{address_id}', methods=['PUT'], cors=True)
def update_address(address_id):
    return addresses.endpoint_update_address(app.current_request, services, address_id)


@app.route('/addresses/{address_id}', methods=['DELETE'], cors=True)
def delete_address(address_id):
    return addresses.endpoint_delete_address(app.current_request, services, address_id)


@app.route('/selected-address', methods=['GET'], cors=True)
def get_selected_address():
    return addresses.endpoint_get_selected_address(app.current_request, services)


@app.route('/selected-address', methods=['PUT'], cors=True)
def select_address():
    return addresses.endpoint_select_address(app.current_request, services)

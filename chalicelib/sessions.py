import threading
import weakref
from typing import Dict, List, Optional

from chalicelib.carts import Cart
from chalicelib.constants import keys_structure
from chalicelib.utils import rest_api
from chalicelib.utils.cache import SessionCache, get_session_cache
from chalicelib.utils.logger import logger


class Session:
    """
    Session-scoped state of one customer: the cart, the selected address pointer,
    the cached order list and the pending submission key.

    Writers hold `lock`, a re-entrant lock shared by all Session handles of the same customer.
    """

    def __init__(self, customer_id: str, cache: SessionCache, lock=None):
        self.customer_id: str = customer_id
        self.cache: SessionCache = cache
        self.lock = lock or threading.RLock()
        self._cart: Optional[Cart] = None
        self.last_cart_event: Optional[str] = None

    def _on_cart_change(self, event: str, cart: Cart):
        self.last_cart_event = event
        self.cache.put(self.customer_id, keys_structure.cart_key, cart.to_dict())
        # a changed cart is a new submission
        self.cache.delete(self.customer_id, keys_structure.submission_key)
        logger.info(f'Session ::: {self.customer_id=} cart {event}, lines={len(cart.lines)}')

    @property
    def cart(self) -> Cart:
        if self._cart is None:
            self._cart = Cart.from_dict(
                self.cache.get(self.customer_id, keys_structure.cart_key, {}),
                on_change=self._on_cart_change
            )
        return self._cart

    def replace_cart(self, cart: Cart, event: str):
        cart.on_change = self._on_cart_change
        self._cart = cart
        self._on_cart_change(event, cart)

    @property
    def selected_address_id(self) -> Optional[str]:
        return self.cache.get(self.customer_id, keys_structure.selected_address_key)

    @selected_address_id.setter
    def selected_address_id(self, address_id: Optional[str]):
        if address_id:
            self.cache.put(self.customer_id, keys_structure.selected_address_key, address_id)
        else:
            self.cache.delete(self.customer_id, keys_structure.selected_address_key)

    def cached_orders(self) -> List[Dict]:
        return self.cache.get(self.customer_id, keys_structure.orders_key, [])

    def cache_orders(self, orders: List[Dict]):
        self.cache.put(self.customer_id, keys_structure.orders_key, orders)

    def pending_submission(self) -> Dict:
        return self.cache.get(self.customer_id, keys_structure.submission_key, {})

    def set_pending_submission(self, submission: Optional[Dict]):
        if submission:
            self.cache.put(self.customer_id, keys_structure.submission_key, submission)
        else:
            self.cache.delete(self.customer_id, keys_structure.submission_key)


class SessionRegistry:
    """
    Handle passed to the endpoints: collaborators plus per-customer session state
    """

    def __init__(self, cache: SessionCache, catalog, order_store, address_store):
        self.cache = cache
        self.catalog = catalog
        self.order_store = order_store
        self.address_store = address_store
        # a lock lives as long as some Session of its customer holds it
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @classmethod
    def from_environ(cls):
        api_client = rest_api.ApiClient()
        return cls(
            cache=get_session_cache(),
            catalog=rest_api.CatalogAPI(api_client),
            order_store=rest_api.OrderStoreAPI(api_client),
            address_store=rest_api.AddressStoreAPI(api_client)
        )

    def _lock_for(self, customer_id: str):
        with self._locks_guard:
            lock = self._locks.get(customer_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[customer_id] = lock
            return lock

    def session(self, customer_id: str) -> Session:
        return Session(customer_id, self.cache, lock=self._lock_for(customer_id))

from decimal import Decimal
from typing import List, Dict

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.status_codes import http200
from chalicelib.utils import app as utils_app, exceptions
from chalicelib.utils.data import to_money
from chalicelib.utils.logger import logger


class MenuItem(EntityBase):
    def __init__(self, id_, restaurant_id=None, **kwargs):
        EntityBase.__init__(self, id_)

        self.restaurant_id: str = restaurant_id
        self.name: str = kwargs.get('name') or ''
        self.description: str = kwargs.get('description') or ''
        self.price: Decimal = to_money(kwargs.get('price'), Decimal('0.00'))
        self.category: str = kwargs.get('category') or ''
        self.is_veg: bool = bool(kwargs.get('is_veg', False))
        self.is_available: bool = kwargs.get('is_available', True) is not False
        self.image: str = kwargs.get('image')
        self.rating: Decimal = Decimal(str(kwargs['rating'])) if kwargs.get('rating') is not None else None
        self.record_type = 'menu_item'

    @classmethod
    def from_api(cls, record: Dict, restaurant_id=None):
        return cls(
            id_=str(record.get('item_id') or record.get('itemId') or record.get('id')),
            restaurant_id=record.get('restaurant_id') or record.get('restaurantId') or restaurant_id,
            name=record.get('name'),
            description=record.get('description'),
            price=record.get('price'),
            category=record.get('category'),
            is_veg=record.get('isVeg', False),
            is_available=record.get('isAvailable', True),
            image=record.get('image'),
            rating=record.get('rating')
        )

    def is_available_right_now(self) -> bool:
        return self.is_available

    def _to_dict(self):
        return {
            'id_': self.id_,
            'restaurant_id': self.restaurant_id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'category': self.category,
            'is_veg': self.is_veg,
            'is_available': self.is_available,
            'image': self.image,
            'rating': self.rating
        }


def find_menu_item(menu_items: List[MenuItem], menu_item_id):
    return next((item for item in menu_items if item.id_ == menu_item_id), None)


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_get_menu_items(catalog, restaurant_id) -> Response:
    try:
        menu_items: List[MenuItem] = catalog.get_menu_items(restaurant_id)
    except (exceptions.RemoteAPIError, exceptions.NotFound) as error:
        logger.warning(f'endpoint_get_menu_items ::: catalog unavailable, returning empty menu, {error=}')
        menu_items = []
    logger.info(f"endpoint_get_menu_items ::: returning menu items={[item.id_ for item in menu_items]}")
    return Response(status_code=http200, body=[item.to_ui() for item in menu_items])

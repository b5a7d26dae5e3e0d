from decimal import Decimal
from typing import List, Dict, Optional

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.status_codes import http200
from chalicelib.utils import app as utils_app, exceptions
from chalicelib.utils.data import to_money
from chalicelib.utils.logger import logger


class Restaurant(EntityBase):
    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_)

        self.name: str = kwargs.get('name') or ''
        self.image: str = kwargs.get('image') or ''
        self.cuisine: list = list(kwargs.get('cuisine') or [])
        self.rating: Decimal = Decimal(str(kwargs.get('rating') or 0))
        self.total_ratings: int = int(kwargs.get('total_ratings') or 0)
        self.delivery_time: str = kwargs.get('delivery_time') or ''
        self.delivery_fee: Decimal = to_money(kwargs.get('delivery_fee'), Decimal('0.00'))
        self.min_order: Decimal = to_money(kwargs.get('min_order'), Decimal('0.00'))
        self.distance: str = kwargs.get('distance') or ''
        self.is_pure_veg: bool = bool(kwargs.get('is_pure_veg', False))
        self.offers: list = list(kwargs.get('offers') or [])
        self.is_open: bool = kwargs.get('is_open', True) is not False
        self.record_type = 'restaurant'

    @classmethod
    def from_api(cls, record: Dict):
        delivery_time = record.get('deliveryTime')
        if not delivery_time and record.get('prepTimeMin') is not None:
            prep_time = int(record['prepTimeMin'])
            delivery_time = f'{prep_time}-{prep_time + 10} mins'
        return cls(
            id_=str(record.get('restaurantId') or record.get('id')),
            name=record.get('name'),
            image=record.get('restaurantImage') or record.get('image'),
            cuisine=record.get('cuisine'),
            rating=record.get('rating'),
            total_ratings=record.get('totalRatings'),
            delivery_time=delivery_time,
            delivery_fee=record.get('deliveryFee'),
            min_order=record.get('minOrder'),
            distance=record.get('distance'),
            is_pure_veg=record.get('isPureVeg', False),
            offers=record.get('offers'),
            is_open=record.get('isOpen', True)
        )

    def matches(self, search: Optional[str]) -> bool:
        if not search:
            return True
        search_lower = search.strip().lower()
        return search_lower in self.name.lower() or \
            any(search_lower in str(cuisine).lower() for cuisine in self.cuisine)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name': self.name,
            'image': self.image,
            'cuisine': self.cuisine,
            'rating': self.rating,
            'total_ratings': self.total_ratings,
            'delivery_time': self.delivery_time,
            'delivery_fee': self.delivery_fee,
            'min_order': self.min_order,
            'distance': self.distance,
            'is_pure_veg': self.is_pure_veg,
            'offers': self.offers,
            'is_open': self.is_open
        }


def filter_restaurants(restaurants: List[Restaurant], search: Optional[str] = None) -> List[Restaurant]:
    """
    Case-insensitive match on name or any cuisine tag, best rated first
    """
    found = [restaurant for restaurant in restaurants if restaurant.matches(search)]
    return sorted(found, key=lambda restaurant: restaurant.rating, reverse=True)


@utils_app.log_start_finish
def endpoint_get_all(catalog, search=None) -> Response:
    try:
        restaurants: List[Restaurant] = catalog.list_restaurants(search)
    except exceptions.RemoteAPIError as error:
        logger.warning(f'endpoint_get_all ::: catalog unavailable, returning empty list, {error=}')
        restaurants = []
    logger.info(f"endpoint_get_all ::: returning restaurants={[rest.id_ for rest in restaurants]}")
    return Response(status_code=http200, body=[restaurant.to_ui() for restaurant in restaurants])


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_get_by_id(catalog, restaurant_id) -> Response:
    restaurant = catalog.get_restaurant(restaurant_id).to_ui()
    logger.info(f"endpoint_get_by_id ::: returning restaurant={restaurant}")
    return Response(status_code=http200, body=restaurant)

"""
Client-facing order stages and the mapping from the order store vocabulary.

The order store owns status transitions. The client only translates whatever
code the store reports into one of six stages:

    placed -> confirmed -> preparing -> out_for_delivery -> delivered
    cancelled (from any non-terminal stage)
"""
from enum import Enum


class OrderStatus(Enum):
    PLACED = 'placed'
    CONFIRMED = 'confirmed'
    PREPARING = 'preparing'
    OUT_FOR_DELIVERY = 'out_for_delivery'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


DEFAULT_STATUS = OrderStatus.PLACED

HAPPY_PATH = (
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED
)

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

REMOTE_STATUS_MAP = {
    'PENDING': OrderStatus.PLACED,
    'PLACED': OrderStatus.PLACED,
    'CONFIRMED': OrderStatus.CONFIRMED,
    'ACCEPTED': OrderStatus.CONFIRMED,
    'PREPARING': OrderStatus.PREPARING,
    'READY': OrderStatus.PREPARING,
    'OUT_FOR_DELIVERY': OrderStatus.OUT_FOR_DELIVERY,
    'PICKED_UP': OrderStatus.OUT_FOR_DELIVERY,
    'DELIVERED': OrderStatus.DELIVERED,
    'CANCELLED': OrderStatus.CANCELLED,
    'CANCELED': OrderStatus.CANCELLED,
    'REJECTED': OrderStatus.CANCELLED
}

# order store codes used when a stage is reported back to the store
REMOTE_CODES = {
    OrderStatus.PLACED: 'PENDING',
    OrderStatus.CONFIRMED: 'CONFIRMED',
    OrderStatus.PREPARING: 'PREPARING',
    OrderStatus.OUT_FOR_DELIVERY: 'OUT_FOR_DELIVERY',
    OrderStatus.DELIVERED: 'DELIVERED',
    OrderStatus.CANCELLED: 'CANCELLED'
}

STATUS_LABELS = {
    OrderStatus.PLACED: 'Order Placed',
    OrderStatus.CONFIRMED: 'Confirmed',
    OrderStatus.PREPARING: 'Preparing',
    OrderStatus.OUT_FOR_DELIVERY: 'Out for Delivery',
    OrderStatus.DELIVERED: 'Delivered',
    OrderStatus.CANCELLED: 'Cancelled'
}

REMOTE_ONLY_LABELS = {
    'READY': 'Ready for Pickup'
}


def _normalize(remote_code) -> str:
    if not isinstance(remote_code, str):
        return ''
    return remote_code.strip().upper()


def map_status(remote_code) -> OrderStatus:
    """
    Total: any input maps to a stage, unknown codes map to placed
    """
    if isinstance(remote_code, OrderStatus):
        return remote_code
    return REMOTE_STATUS_MAP.get(_normalize(remote_code), DEFAULT_STATUS)


def to_remote_code(status) -> str:
    return REMOTE_CODES[map_status(status)]


def status_label(status) -> str:
    return STATUS_LABELS[map_status(status)]


def remote_status_label(remote_code) -> str:
    return REMOTE_ONLY_LABELS.get(_normalize(remote_code)) or status_label(remote_code)


def is_terminal(status) -> bool:
    return map_status(status) in TERMINAL_STATUSES


def progress(status) -> int:
    """
    Position on the happy path, -1 for cancelled orders
    """
    status = map_status(status)
    if status is OrderStatus.CANCELLED:
        return -1
    return HAPPY_PATH.index(status)

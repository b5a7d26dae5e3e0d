from decimal import Decimal

MONEY_PLACES = Decimal('1.00')

DEFAULT_API_BASE_URL = 'http://localhost:8080'
DEFAULT_API_TIMEOUT_SECONDS = 10
DEFAULT_ESTIMATED_DELIVERY_MINUTES = 40
DEFAULT_ORDERS_LIST_LIMIT = 50
DEFAULT_SESSION_TTL_HOURS = 24

ADDRESS_TYPES = ('Home', 'Work', 'Other')
PAYMENT_METHODS = ('cod', 'online')
DEFAULT_PAYMENT_METHOD = 'cod'

MISSING_ADDRESS_MESSAGE = 'Please add a delivery address to continue'

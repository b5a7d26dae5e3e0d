session_cache_pk = 'session_cache_{customer_id}'
session_cache_sk = '{key}'

cart_key = 'cart'
selected_address_key = 'selected_address_id'
orders_key = 'orders'
submission_key = 'submission'

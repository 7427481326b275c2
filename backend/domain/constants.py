"""
Domain constants used across services/routers.
"""

# Read-cache keys
CACHE_KEY_PRODUCTS_ALL = "products:all"
CACHE_KEY_PRODUCT_PREFIX = "products:"
CACHE_KEY_ORDERS_ALL = "orders:all"
CACHE_KEY_ORDER_PREFIX = "orders:"

# Name of the uniqueness constraint that makes order creation idempotent
PAYMENT_REFERENCE_CONSTRAINT = "uq_orders_payment_reference"

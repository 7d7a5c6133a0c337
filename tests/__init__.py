"""
Component tests for the Storefront API

Requests go through the FastAPI routes, the cart/catalog/order services and
an in-memory mongomock database; nothing internal is mocked.
"""

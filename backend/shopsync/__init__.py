"""
Tenant store data synchronization.

Pulls customers, products and orders from a connected Shopify store and
writes them idempotently into tenant-scoped storage.
"""

__version__ = "0.1.0"

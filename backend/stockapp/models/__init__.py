from .inventory import Category, Product
from .sales import Sale, SaleItem

__all__ = [
    'Category', 'Product',
    'Sale', 'SaleItem',
]

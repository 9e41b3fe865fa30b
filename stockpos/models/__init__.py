from .auth import User, SessionToken
from .catalog import Product
from .inventory import StockMovement
from .sales import Sale, SaleItem
from .opname import StockOpname, StockOpnameItem
from .settings import Setting

__all__ = [
    'User', 'SessionToken',
    'Product',
    'StockMovement',
    'Sale', 'SaleItem',
    'StockOpname', 'StockOpnameItem',
    'Setting',
]

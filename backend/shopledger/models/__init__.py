from .tenancy import Organization, Shop
from .auth import User, SessionToken
from .inventory import Item, StockLedgerEntry
from .sales import Sale, SaleLine
from .purchases import Purchase, PurchaseLine

__all__ = [
    'Organization', 'Shop',
    'User', 'SessionToken',
    'Item', 'StockLedgerEntry',
    'Sale', 'SaleLine',
    'Purchase', 'PurchaseLine',
]

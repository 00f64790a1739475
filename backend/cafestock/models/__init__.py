from .auth import User, SessionToken
from .inventory import Product, StockMovement
from .billing import Subscription, Payment, InvoiceProfile

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockMovement',
    'Subscription', 'Payment', 'InvoiceProfile',
]

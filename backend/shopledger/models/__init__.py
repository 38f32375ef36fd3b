from .catalog import Product
from .orders import Order, OrderLine
from .ledger import Transaction
from .auth import User, OtpChallenge, SessionToken
from .security import SecurityEvent
from .notifications import Notification

__all__ = [
    'Product',
    'Order', 'OrderLine',
    'Transaction',
    'User', 'OtpChallenge', 'SessionToken',
    'SecurityEvent',
    'Notification',
]

from .store import SyncStatus, CacheEntry, RemoteDocument, DocumentSequence
from .orders import OrderStatus, PaymentMode, OrderItem, Order, TERMINAL_STATUSES
from .billing import (
    PaymentStatus,
    CreditStatus,
    LoadStatus,
    Bill,
    OutstandingPayment,
    LoadForm,
    LoadFormItem,
    payment_status_for,
)
from .ledger import TransactionType, LedgerTransaction
from .users import Role, Actor, BookerAccount

__all__ = [
    'SyncStatus', 'CacheEntry', 'RemoteDocument', 'DocumentSequence',
    'OrderStatus', 'PaymentMode', 'OrderItem', 'Order', 'TERMINAL_STATUSES',
    'PaymentStatus', 'CreditStatus', 'LoadStatus',
    'Bill', 'OutstandingPayment', 'LoadForm', 'LoadFormItem', 'payment_status_for',
    'TransactionType', 'LedgerTransaction',
    'Role', 'Actor', 'BookerAccount',
]

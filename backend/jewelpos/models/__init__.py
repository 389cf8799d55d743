from .customers import Client
from .inventory import Product
from .sales import Sale, SaleItem, SaleInstallment, Renegotiation
from .payables import Supplier, Payable, PayableInstallment
from .settings import NotificationSettings
from .auth import User, SessionToken
from .audit import AuditEvent

__all__ = [
    'Client',
    'Product',
    'Sale', 'SaleItem', 'SaleInstallment', 'Renegotiation',
    'Supplier', 'Payable', 'PayableInstallment',
    'NotificationSettings',
    'User', 'SessionToken',
    'AuditEvent',
]

from .auth import User, SessionToken, USER_ROLES
from .vendors import Vendor
from .catalog import Product, ProductPurchase
from .orders import Order, OrderItem, DocumentSequence, ORDER_STATUSES, PRICE_APPROVAL_STATUSES, LOGISTICS_FIELDS
from .demands import Demand, WhatsAppRecipient, DEMAND_STATUSES
from .notifications import NotificationEvent
from .field_configs import FieldConfig, FIELD_TYPES, FIELD_AUDIENCES

__all__ = [
    'User', 'SessionToken', 'USER_ROLES',
    'Vendor',
    'Product', 'ProductPurchase',
    'Order', 'OrderItem', 'DocumentSequence',
    'ORDER_STATUSES', 'PRICE_APPROVAL_STATUSES', 'LOGISTICS_FIELDS',
    'Demand', 'WhatsAppRecipient', 'DEMAND_STATUSES',
    'NotificationEvent',
    'FieldConfig', 'FIELD_TYPES', 'FIELD_AUDIENCES',
]

from .parties import Customer, Seller
from .orders import Order, OrderItem, OrderStatusHistory, RefundRecord
from .settlement import PayoutRecord
from .documents import DocumentSequence, CatalogEvent
from .settings import PlatformSetting, PlatformSettingAudit

__all__ = [
    'Customer', 'Seller',
    'Order', 'OrderItem', 'OrderStatusHistory', 'RefundRecord',
    'PayoutRecord',
    'DocumentSequence', 'CatalogEvent',
    'PlatformSetting', 'PlatformSettingAudit',
]

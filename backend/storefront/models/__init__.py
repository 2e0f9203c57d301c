from .related import RelatedEntity, EntityRef
from .users import User, TokenBlacklist, WholesaleApplication
from .catalog import Product, ProductVariation, StockLocation, StockLevel, StockMovement
from .cart import CartItem
from .orders import Order, OrderItem, OrderStatusHistory, OrderFulfillment
from .commissions import Commission, PayoutBatch
from .tasks import Task
from .payments import Payment
from .discounts import DiscountCode

__all__ = [
    'RelatedEntity', 'EntityRef',
    'User', 'TokenBlacklist', 'WholesaleApplication',
    'Product', 'ProductVariation', 'StockLocation', 'StockLevel', 'StockMovement',
    'CartItem',
    'Order', 'OrderItem', 'OrderStatusHistory', 'OrderFulfillment',
    'Commission', 'PayoutBatch',
    'Task',
    'Payment',
    'DiscountCode',
]

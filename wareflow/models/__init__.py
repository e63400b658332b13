from .parties import Warehouse, Dealer, Salesman, RegistrationCode
from .catalog import Item
from .inventory import InventoryRecord, InventoryMovement
from .orders import Order, OrderLine
from .payments import Payment
from .returns import ReturnOrder

__all__ = [
    'Warehouse', 'Dealer', 'Salesman', 'RegistrationCode',
    'Item',
    'InventoryRecord', 'InventoryMovement',
    'Order', 'OrderLine',
    'Payment',
    'ReturnOrder',
]

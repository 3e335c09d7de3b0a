from .auth import User, SessionToken
from .catalog import Supplier, Ingredient, MenuItem, MenuItemIngredient
from .shifts import Shift, ShiftStaff, ShiftState, MenuStopListEntry, IngredientStopListEntry
from .inventory import Delivery, WriteOff
from .orders import Order, OrderItem, Payment
from .ledger import LedgerEvent

__all__ = [
    'User', 'SessionToken',
    'Supplier', 'Ingredient', 'MenuItem', 'MenuItemIngredient',
    'Shift', 'ShiftStaff', 'ShiftState', 'MenuStopListEntry', 'IngredientStopListEntry',
    'Delivery', 'WriteOff',
    'Order', 'OrderItem', 'Payment',
    'LedgerEvent',
]

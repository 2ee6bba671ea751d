from .auth import ROLES, User, SessionToken
from .inventory import Product, Warehouse, WarehouseStock, InventoryMovement
from .customers import Client, ReturnVoucher
from .sales import Sale, SaleItem, Payment, OrderWarehouseDistribution
from .registers import CashRegister
from .locks import OrderLock

__all__ = [
    'ROLES', 'User', 'SessionToken',
    'Product', 'Warehouse', 'WarehouseStock', 'InventoryMovement',
    'Client', 'ReturnVoucher',
    'Sale', 'SaleItem', 'Payment', 'OrderWarehouseDistribution',
    'CashRegister',
    'OrderLock',
]

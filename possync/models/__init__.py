from possync.models.business import Business
from possync.models.inventory import Category, Product, StockMovement
from possync.models.sales import Cancellation, CancellationAudit, CashSession, Refund, Sale, SaleItem
from possync.models.user import User

__all__ = [
    "Business",
    "Cancellation",
    "CancellationAudit",
    "CashSession",
    "Category",
    "Product",
    "Refund",
    "Sale",
    "SaleItem",
    "StockMovement",
    "User",
]

from .parties import Company, Supplier, Customer, Product
from .inventory import Stock
from .ledger import SupplierLedgerEntry
from .purchasing import (
    Purchase,
    PurchaseLine,
    PurchaseExpenseCategory,
    PurchaseExpense,
    ProductCostHistory,
    SupplierPaymentReceipt,
    SupplierPaymentInstallment,
)
from .sales import ProvisionalSale, ProvisionalSaleLine, Sale, SaleLine

__all__ = [
    'Company', 'Supplier', 'Customer', 'Product',
    'Stock',
    'SupplierLedgerEntry',
    'Purchase', 'PurchaseLine', 'PurchaseExpenseCategory', 'PurchaseExpense',
    'ProductCostHistory', 'SupplierPaymentReceipt', 'SupplierPaymentInstallment',
    'ProvisionalSale', 'ProvisionalSaleLine', 'Sale', 'SaleLine',
]

"""
Checkout core: catalog snapshot, cart engine, orchestrator, receipts and
transaction history. Framework free; talks to the store through a Backend.
"""
from pos.checkout.result import Result, ErrorKind
from pos.checkout.records import (
    ProductRecord, CashierIdentity, PaymentInput, CommitLine, CommitOutcome,
    TransactionRecord, TransactionItemRecord, TransactionSummary, StoreIdentity
)
from pos.checkout.backends import Backend, BackendError, LocalBackend, HttpBackend
from pos.checkout.catalog import CatalogSnapshot, load_catalog, lookup_product
from pos.checkout.cart import Cart, CartLine, add_item, set_quantity, remove_item, compute_total, compute_change
from pos.checkout.orchestrator import CheckoutSession, submit, new_idempotency_key
from pos.checkout.history import list_transactions, get_transaction, find_by_idempotency_key
from pos.checkout.receipt import (
    Receipt, ReceiptLine, build_receipt, load_store_identity, receipt_for_transaction,
    ThermalLayout, PageLayout, get_layout, render_receipt, render_receipt_pdf
)

__all__ = [
    'Result', 'ErrorKind',
    'ProductRecord', 'CashierIdentity', 'PaymentInput', 'CommitLine', 'CommitOutcome',
    'TransactionRecord', 'TransactionItemRecord', 'TransactionSummary', 'StoreIdentity',
    'Backend', 'BackendError', 'LocalBackend', 'HttpBackend',
    'CatalogSnapshot', 'load_catalog', 'lookup_product',
    'Cart', 'CartLine', 'add_item', 'set_quantity', 'remove_item', 'compute_total', 'compute_change',
    'CheckoutSession', 'submit', 'new_idempotency_key',
    'list_transactions', 'get_transaction', 'find_by_idempotency_key',
    'Receipt', 'ReceiptLine', 'build_receipt', 'load_store_identity', 'receipt_for_transaction',
    'ThermalLayout', 'PageLayout', 'get_layout', 'render_receipt', 'render_receipt_pdf',
]

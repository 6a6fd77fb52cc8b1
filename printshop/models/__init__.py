"""Models package - exports all SQLAlchemy models."""
# Users
from printshop.models.app_user import AppUser, UserRole, RoleName, hash_api_token

# Pipeline documents
from printshop.models.quote import Quote, QuoteStatus
from printshop.models.order import Order, PaymentStatus, PAYMENT_TRANSITIONS, quote_marker
from printshop.models.order_item import OrderItem
from printshop.models.invoice import Invoice
from printshop.models.invoice_item import InvoiceItem
from printshop.models.document_sequence import DocumentSequence, INVOICE_SEQUENCE

# Checkout
from printshop.models.gift_card import GiftCard
from printshop.models.checkout_session import CheckoutSession
from printshop.models.tax_settings import TaxSettings

# Notifications
from printshop.models.notification import Notification

__all__ = [
    'AppUser', 'UserRole', 'RoleName', 'hash_api_token',
    'Quote', 'QuoteStatus',
    'Order', 'PaymentStatus', 'PAYMENT_TRANSITIONS', 'quote_marker',
    'OrderItem', 'Invoice', 'InvoiceItem', 'DocumentSequence', 'INVOICE_SEQUENCE',
    'GiftCard', 'CheckoutSession', 'TaxSettings',
    'Notification',
]

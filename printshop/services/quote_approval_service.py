"""
Quote approval service - issues the invoice and order for an approved quote.

Safe to run any number of times for the same quote: existing documents are
looked up first, and the unique quote_id columns on invoice and shop_order
make a concurrent second insert fail, after which the winner's row is read.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from printshop.models import AppUser, Invoice, Order, Quote, QuoteStatus
from printshop.exceptions import (
    BusinessLogicError, NotFoundError, UnauthenticatedError, UnauthorizedError, StoreError
)
from printshop.services.pricing_service import calculate_order_totals, resolve_tax_rate, to_money
from printshop.services.order_service import find_order_for_quote, create_order_for_quote
from printshop.services.invoice_service import find_invoice_for_quote, create_invoice_for_quote
from printshop.services.notification_service import notify_invoice_created, send_customer_email

logger = logging.getLogger(__name__)


def _no_automations() -> Dict[str, bool]:
    return {
        'invoice_created': False,
        'order_created': False,
        'email_sent': False,
        'customer_notified': False,
        'admin_notified': False,
    }


def _load_quote(session, quote_id: str) -> Quote:
    quote = session.query(Quote).filter(Quote.id == quote_id).first()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote


def authorize_quote_access(session, principal: Optional[AppUser], quote_id: str) -> None:
    """
    Admins may approve any quote; other users only their own.

    Raises:
        UnauthenticatedError: no principal
        NotFoundError: non-admin asking for an unknown quote
        UnauthorizedError: non-admin asking for someone else's quote
    """
    if principal is None:
        raise UnauthenticatedError()

    if principal.is_admin:
        return

    quote = _load_quote(session, quote_id)
    if quote.user_id != principal.id:
        logger.warning(f"[QUOTE APPROVAL] User {principal.id} denied access to quote {quote_id}")
        raise UnauthorizedError('Forbidden: You do not have permission to approve this quote')


def quote_totals(quote: Quote, tax_rate) -> Dict[str, Decimal]:
    """Totals for a quote: one line at the estimated price plus its shipping."""
    line = {'price': to_money(quote.estimated_price), 'quantity': 1, 'tax_enabled': quote.is_taxable}
    return calculate_order_totals([line], tax_rate, shipping_cost=quote.shipping_cost)


def _invoice_totals(invoice: Invoice) -> Dict[str, Decimal]:
    return {
        'subtotal': to_money(invoice.subtotal),
        'tax': to_money(invoice.tax),
        'shipping': to_money(invoice.shipping),
        'discount': to_money(invoice.discount),
        'total': to_money(invoice.total),
    }


def _ensure_order(session, quote: Quote, totals: Dict[str, Decimal]):
    """Existing or new order for the quote; (None, False) if it cannot be created."""
    order = find_order_for_quote(session, quote.id)
    if order:
        logger.info(f"[QUOTE APPROVAL] Order already exists: {order.order_number}")
        return order, False

    try:
        return create_order_for_quote(session, quote, totals), True
    except IntegrityError:
        logger.info(f"[QUOTE APPROVAL] Order for quote {quote.id} created concurrently, reading it")
        return find_order_for_quote(session, quote.id), False
    except Exception as e:
        # The invoice is still issued without an order
        logger.exception(f"[QUOTE APPROVAL] ✗ Error creating order for quote {quote.id}: {e}")
        return None, False


def _link_order(session, invoice: Invoice, order: Order) -> None:
    if invoice.order_id or order is None:
        return
    try:
        invoice.order_id = order.id
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Could not link order {order.order_number} to {invoice.invoice_number}: {e}")


def _run_notifier(notifier: Callable, session, **kwargs) -> Dict[str, bool]:
    try:
        return notifier(session, **kwargs)
    except Exception as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Notifier failed: {e}")
        return {'email_sent': False, 'customer_notified': False, 'admin_notified': False}


def process_quote_approval(
    session,
    event: Dict[str, Any],
    principal: Optional[AppUser],
    settings,
    notifier: Callable = notify_invoice_created,
) -> Dict[str, Any]:
    """
    Finalize a quote status change.

    Steps:
    1. Authorize (admin or quote owner)
    2. Ignore statuses other than approved
    3. Load quote, existing invoice and existing order
    4. Create the order if missing (failure is not fatal)
    5. Create the invoice if missing (number allocation failure is fatal)
    6. Side effects only for a newly created invoice; a replay only retries
       the customer email when no run has claimed it yet

    Authorization comes from the principal alone. invoked_by_customer is
    only logged: a customer flag from an admin, or its absence from the
    owner, changes nothing.

    Args:
        event: {quote_id, status_name, status_slug?, invoked_by_customer?}
        principal: authenticated AppUser (None -> 401)
        settings: PipelineSettings
        notifier: side-effect runner, replaceable in tests

    Returns:
        {success, message, invoice, order, automations}
    """
    event = event or {}
    quote_id = event.get('quote_id')
    if not quote_id:
        raise BusinessLogicError('quote_id is required')

    authorize_quote_access(session, principal, quote_id)

    status = QuoteStatus.from_label(event.get('status_name'), event.get('status_slug'))
    if status is not QuoteStatus.APPROVED:
        logger.info(f"[QUOTE APPROVAL] Quote {quote_id} status is {status.value}, nothing to do")
        return {
            'success': True,
            'message': 'Quote status is not approved, no action taken',
            'invoice': None,
            'order': None,
            'automations': _no_automations(),
        }

    logger.info(f"[QUOTE APPROVAL] Processing approved quote {quote_id} (invoked_by_customer={bool(event.get('invoked_by_customer'))})")
    quote = _load_quote(session, quote_id)
    language = settings.resolve_language(quote.customer_language)
    automations = _no_automations()

    tax_rate = resolve_tax_rate(session, settings, quote.is_taxable)
    totals = quote_totals(quote, tax_rate)

    invoice = find_invoice_for_quote(session, quote.id)
    if invoice:
        logger.info(f"[QUOTE APPROVAL] Invoice already exists: {invoice.invoice_number}")

    order, automations['order_created'] = _ensure_order(session, quote, totals)

    if invoice is None:
        try:
            invoice = create_invoice_for_quote(session, quote, order, totals, settings)
            automations['invoice_created'] = True
            logger.info(f"[QUOTE APPROVAL] ✓ Invoice created: {invoice.invoice_number}")
        except IntegrityError:
            invoice = find_invoice_for_quote(session, quote.id)
            if invoice is None:
                raise StoreError('Error creating invoice')
            logger.info(f"[QUOTE APPROVAL] Invoice created concurrently: {invoice.invoice_number}")
    else:
        _link_order(session, invoice, order)

    if automations['invoice_created']:
        effects = _run_notifier(
            notifier,
            session,
            quote=quote,
            invoice=invoice,
            order=order,
            totals=totals,
            tax_rate=tax_rate,
            language=language,
            settings=settings,
        )
        automations.update(effects)
    elif invoice.notified_at is None:
        logger.info(f"[QUOTE APPROVAL] Retrying customer email for {invoice.invoice_number}")
        automations['email_sent'] = send_customer_email(
            session, quote, invoice, _invoice_totals(invoice), tax_rate, language, settings
        )

    logger.info(f"[QUOTE APPROVAL] Process completed for quote {quote.id}: {automations}")

    return {
        'success': True,
        'message': 'Quote approved successfully',
        'invoice': {
            'id': invoice.id,
            'invoice_number': invoice.invoice_number,
            'total': to_money(invoice.total),
        },
        'order': {'id': order.id, 'order_number': order.order_number} if order else None,
        'automations': automations,
    }

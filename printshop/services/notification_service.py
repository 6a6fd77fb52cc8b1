"""
Notification service - side effects after an invoice is issued.

Every step (customer email, customer in-app notification, admin in-app
notifications) runs on its own: a failure is logged and reported in the
returned flags, never raised to the caller.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from printshop.models import Notification, UserRole, RoleName, Invoice, Order, Quote
from printshop.services.email_service import send_email, render_quote_approved_email
from printshop.utils.formatters import money_eur

logger = logging.getLogger(__name__)


def _admin_user_ids(session) -> List[str]:
    rows = session.query(UserRole.user_id).filter(UserRole.role == RoleName.ADMIN.value).all()
    return [row.user_id for row in rows]


def _claim_customer_email(session, invoice_id: str) -> bool:
    """Stamp notified_at only if it is still empty; True for the run that stamped it."""
    stmt = (
        update(Invoice)
        .where(Invoice.id == invoice_id, Invoice.notified_at.is_(None))
        .values(notified_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    try:
        claimed = session.execute(stmt).rowcount == 1
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Could not claim customer email for invoice {invoice_id}: {e}")
        return False
    return claimed


def _release_customer_email(session, invoice_id: str) -> None:
    """Clear notified_at after a failed send so a later replay retries it."""
    try:
        session.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id)
            .values(notified_at=None)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Could not clear notified_at for invoice {invoice_id}: {e}")


def send_customer_email(session, quote: Quote, invoice: Invoice, totals: Dict[str, Decimal], tax_rate, language: str, settings) -> bool:
    """
    Send the approval email at most once per invoice.

    notified_at is stamped before the send with a conditional update, so a
    concurrent run that sees it set skips the email. A failed send clears it.
    """
    if not quote.customer_email:
        logger.info(f"[QUOTE APPROVAL] Quote {quote.id} has no customer email")
        return False

    try:
        invoice_url = f"{settings.site_url}/mis-facturas/{invoice.id}" if settings.site_url else None
        subject, html_body, text_body = render_quote_approved_email(
            language=language,
            customer_name=quote.customer_name,
            quote_type=quote.quote_type,
            invoice_number=invoice.invoice_number,
            totals=totals,
            tax_rate=tax_rate,
            company_name=settings.company_name,
            company_email=settings.company_email,
            invoice_url=invoice_url,
        )
    except Exception as e:
        logger.exception(f"[QUOTE APPROVAL] ✗ Could not render email for quote {quote.id}: {e}")
        return False

    invoice_id = invoice.id
    invoice_number = invoice.invoice_number
    if not _claim_customer_email(session, invoice_id):
        logger.info(f"[QUOTE APPROVAL] Email for {invoice_number} already sent or in progress")
        return False

    if not send_email(quote.customer_email, subject, html_body, text_body):
        _release_customer_email(session, invoice_id)
        return False

    return True


def notify_customer(session, quote: Quote, invoice: Invoice, totals: Dict[str, Decimal]) -> bool:
    """In-app notification for the quote owner (guests have none)."""
    if not quote.user_id:
        return False

    try:
        session.add(Notification(
            user_id=quote.user_id,
            type='quote_approved',
            title='✅ Cotización Aprobada',
            message=(
                f"Tu cotización ha sido aprobada. Se ha generado la factura {invoice.invoice_number} "
                f"por {money_eur(totals['total'])}. Puedes proceder con el pago."
            ),
            link=f"/mis-facturas/{invoice.id}",
            is_read=False,
        ))
        session.commit()
        return True
    except Exception as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Error creating customer notification: {e}")
        return False


def notify_admins(session, quote: Quote, invoice: Invoice, order: Optional[Order], totals: Dict[str, Decimal], email_sent: bool) -> bool:
    """One system notification per administrator."""
    try:
        admin_ids = _admin_user_ids(session)
        if not admin_ids:
            logger.info("[QUOTE APPROVAL] No admins to notify")
            return False

        order_message = f" Se generó también el pedido {order.order_number}." if order else ''
        email_message = ' El cliente ha sido notificado por email.' if email_sent else ''
        message = (
            f"Se generó automáticamente la factura {invoice.invoice_number} ({money_eur(totals['total'])}) "
            f"para la cotización de {quote.customer_name}.{order_message}{email_message}"
        )

        session.add_all([
            Notification(
                user_id=admin_id,
                type='system',
                title='🤖 Automatización: Factura Generada',
                message=message,
                link='/admin/facturas',
                is_read=False,
            )
            for admin_id in admin_ids
        ])
        session.commit()
        return True
    except Exception as e:
        session.rollback()
        logger.exception(f"[QUOTE APPROVAL] ✗ Error notifying admins: {e}")
        return False


def notify_invoice_created(
    session,
    quote: Quote,
    invoice: Invoice,
    order: Optional[Order],
    totals: Dict[str, Decimal],
    tax_rate,
    language: str,
    settings,
) -> Dict[str, bool]:
    """
    Run all side effects for a freshly created invoice.

    Returns:
        {email_sent, customer_notified, admin_notified}
    """
    email_sent = send_customer_email(session, quote, invoice, totals, tax_rate, language, settings)
    customer_notified = notify_customer(session, quote, invoice, totals)
    admin_notified = notify_admins(session, quote, invoice, order, totals, email_sent)

    logger.info(
        f"[QUOTE APPROVAL] Side effects for {invoice.invoice_number}: email={email_sent} "
        f"customer={customer_notified} admins={admin_notified}"
    )
    return {
        'email_sent': email_sent,
        'customer_notified': customer_notified,
        'admin_notified': admin_notified,
    }

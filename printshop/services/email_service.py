"""
Email service for customer notifications.
Uses Flask-Mail for SMTP integration with UTF-8 support.
"""
import logging
from decimal import Decimal
from typing import Dict, Optional, Tuple

from flask import current_app
from flask_mail import Mail, Message
from markupsafe import escape

from printshop.utils.formatters import money_eur

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is configured and switched on.

    MAIL_SUPPRESS_SEND still counts as enabled: Flask-Mail records the
    message instead of delivering it (tests rely on this).
    """
    cfg = current_app.config
    return bool(cfg.get("MAIL_ENABLED", False) and cfg.get("MAIL_SERVER"))


def send_email(to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
    """
    Send one email.

    Returns:
        True only if the message was handed to the mail backend.
    """
    if not to_email:
        logger.warning("[EMAIL] No recipient, email skipped")
        return False

    if not _mail_enabled():
        logger.warning(f"[MAIL DISABLED] Email '{subject}' skipped for {to_email}")
        return False

    try:
        msg = Message(
            subject=subject,
            recipients=[to_email],
            body=text_body,
            html=html_body,
        )
        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Email sent to {to_email}")
        return True

    except UnicodeEncodeError as e:
        logger.exception(f"[EMAIL] ✗ Unicode encoding error: {e}")
        return False

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Error sending email to {to_email}: {e}")
        return False


QUOTE_APPROVED_TEXTS: Dict[str, Dict[str, str]] = {
    'es': {
        'subject': '✅ Cotización Aprobada - Factura {invoice_number}',
        'heading': '¡Tu Cotización ha sido Aprobada! ✅',
        'badge': 'APROBADA',
        'greeting': 'Hola {name},',
        'intro': '¡Excelentes noticias! Tu cotización ha sido <strong>aprobada</strong> por nuestro equipo.',
        'invoice_title': '📄 Factura Generada',
        'invoice_number': 'Número de Factura',
        'type': 'Tipo',
        'subtotal': 'Subtotal',
        'shipping': 'Envío',
        'tax': 'IVA',
        'ready': 'La factura está lista para ser pagada',
        'next': 'Puedes revisar los detalles y proceder con el pago desde tu panel de usuario.',
        'view': 'Ver factura',
        'questions': 'Si tienes alguna pregunta, no dudes en contactarnos.',
        'automatic': 'Este es un correo automático de {company}',
        'contact': 'Contacto',
    },
    'en': {
        'subject': '✅ Quote Approved - Invoice {invoice_number}',
        'heading': 'Your Quote has been Approved! ✅',
        'badge': 'APPROVED',
        'greeting': 'Hello {name},',
        'intro': 'Great news! Your quote has been <strong>approved</strong> by our team.',
        'invoice_title': '📄 Invoice Generated',
        'invoice_number': 'Invoice Number',
        'type': 'Type',
        'subtotal': 'Subtotal',
        'shipping': 'Shipping',
        'tax': 'VAT',
        'ready': 'The invoice is ready to be paid',
        'next': 'You can review the details and pay from your account dashboard.',
        'view': 'View invoice',
        'questions': 'If you have any questions, do not hesitate to contact us.',
        'automatic': 'This is an automatic email from {company}',
        'contact': 'Contact',
    },
    'nl': {
        'subject': '✅ Offerte Goedgekeurd - Factuur {invoice_number}',
        'heading': 'Je Offerte is Goedgekeurd! ✅',
        'badge': 'GOEDGEKEURD',
        'greeting': 'Hallo {name},',
        'intro': 'Goed nieuws! Je offerte is <strong>goedgekeurd</strong> door ons team.',
        'invoice_title': '📄 Factuur Aangemaakt',
        'invoice_number': 'Factuurnummer',
        'type': 'Type',
        'subtotal': 'Subtotaal',
        'shipping': 'Verzending',
        'tax': 'BTW',
        'ready': 'De factuur staat klaar om betaald te worden',
        'next': 'Je kunt de details bekijken en betalen via je gebruikerspaneel.',
        'view': 'Factuur bekijken',
        'questions': 'Heb je vragen? Neem gerust contact met ons op.',
        'automatic': 'Dit is een automatische e-mail van {company}',
        'contact': 'Contact',
    },
}


def _percent(tax_rate) -> str:
    """0.21 -> '21', 0.055 -> '5.5'"""
    value = (Decimal(str(tax_rate or 0)) * 100).normalize()
    return f"{value:f}"


def render_quote_approved_email(
    language: str,
    customer_name: str,
    quote_type: str,
    invoice_number: str,
    totals: Dict[str, Decimal],
    tax_rate,
    company_name: str,
    company_email: str,
    invoice_url: Optional[str] = None,
) -> Tuple[str, str, str]:
    """
    Build (subject, html, text) for the quote approval email.

    Everything that comes from the customer or the database is escaped
    before it goes into the HTML.
    """
    t = QUOTE_APPROVED_TEXTS.get(language) or QUOTE_APPROVED_TEXTS['es']

    safe_name = escape(customer_name or '')
    safe_invoice = escape(invoice_number or '')
    safe_type = escape(quote_type or '')
    safe_company = escape(company_name or '')
    safe_contact = escape(company_email or '')

    subject = t['subject'].format(invoice_number=invoice_number)

    breakdown = f"{t['subtotal']}: {money_eur(totals['subtotal'])}"
    if totals['shipping'] > 0:
        breakdown += f" | {t['shipping']}: {money_eur(totals['shipping'])}"
    breakdown += f" | {t['tax']} ({_percent(tax_rate)}%): {money_eur(totals['tax'])}"

    button = ''
    if invoice_url:
        button = f'<a href="{escape(invoice_url)}" class="button">{t["view"]}</a>'

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; background: #f9f9f9; }}
            .card {{ background: #fff; border-radius: 8px; padding: 30px; }}
            .header {{ text-align: center; margin-bottom: 30px; background: #3b82f6; color: #fff; padding: 20px; border-radius: 8px; }}
            .badge {{ background: #10b981; color: #fff; padding: 8px 16px; border-radius: 20px; display: inline-block; }}
            .info-box {{ background: #f0f9ff; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #3b82f6; }}
            .amount {{ font-size: 32px; font-weight: bold; color: #3b82f6; text-align: center; margin: 20px 0; }}
            .button {{ display: inline-block; background: #3b82f6; color: #fff !important; padding: 12px 30px; text-decoration: none; border-radius: 6px; }}
            .footer {{ text-align: center; margin-top: 30px; color: #999; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="card">
                <div class="header">
                    <div style="font-size: 28px; font-weight: bold;">{safe_company}</div>
                    <h2>{t['heading']}</h2>
                    <div class="badge">{t['badge']}</div>
                </div>

                <p>{t['greeting'].format(name=safe_name)}</p>
                <p>{t['intro']}</p>

                <div class="info-box">
                    <h3 style="margin-top: 0; color: #3b82f6;">{t['invoice_title']}</h3>
                    <p><strong>{t['invoice_number']}:</strong> {safe_invoice}</p>
                    <p><strong>{t['type']}:</strong> {safe_type}</p>
                    <p class="amount">{money_eur(totals['total'])}</p>
                    <p style="font-size: 12px; color: #666;">{breakdown}</p>
                </div>

                <div style="text-align: center;">
                    <p><strong>{t['ready']}</strong></p>
                    <p>{t['next']}</p>
                    {button}
                </div>

                <p style="margin-top: 30px;">{t['questions']}</p>

                <div class="footer">
                    <p>{t['automatic'].format(company=safe_company)}</p>
                    <p>{t['contact']}: {safe_contact}</p>
                </div>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""
{t['greeting'].format(name=customer_name or '')}

{t['invoice_number']}: {invoice_number}
{t['type']}: {quote_type}
Total: {money_eur(totals['total'])}
{breakdown}

{t['ready']}
{invoice_url or ''}

{t['contact']}: {company_email}
"""

    return subject, html_body, text_body

"""Explicit settings for the order/invoice pipeline."""
from decimal import Decimal


SUPPORTED_LANGUAGES = ('es', 'en', 'nl')


class PipelineSettings:
    """
    Values the services need from configuration.

    Built once per request from app.config (or directly in tests) and passed
    down, so services never read Flask globals themselves.
    """

    def __init__(
        self,
        default_language: str = 'es',
        default_tax_rate=Decimal('0'),
        invoice_due_days: int = 30,
        invoice_number_prefix: str = 'FAC-',
        company_name: str = 'Thuis3D.be',
        company_email: str = 'info@thuis3d.be',
        company_address: str = '',
        site_url: str = '',
        gift_card_max_attempts: int = 3,
    ):
        self.default_language = default_language if default_language in SUPPORTED_LANGUAGES else 'es'
        self.default_tax_rate = Decimal(str(default_tax_rate))  # percent
        self.invoice_due_days = invoice_due_days
        self.invoice_number_prefix = invoice_number_prefix
        self.company_name = company_name
        self.company_email = company_email
        self.company_address = company_address
        self.site_url = site_url.rstrip('/')
        self.gift_card_max_attempts = max(1, gift_card_max_attempts)

    @classmethod
    def from_config(cls, config) -> 'PipelineSettings':
        """Build settings from a Flask config mapping."""
        return cls(
            default_language=config.get('DEFAULT_LANGUAGE', 'es'),
            default_tax_rate=config.get('DEFAULT_TAX_RATE', 0),
            invoice_due_days=config.get('INVOICE_DUE_DAYS', 30),
            invoice_number_prefix=config.get('INVOICE_NUMBER_PREFIX', 'FAC-'),
            company_name=config.get('COMPANY_NAME', 'Thuis3D.be'),
            company_email=config.get('COMPANY_EMAIL', 'info@thuis3d.be'),
            company_address=config.get('COMPANY_ADDRESS', ''),
            site_url=config.get('SITE_URL', ''),
            gift_card_max_attempts=config.get('GIFT_CARD_MAX_ATTEMPTS', 3),
        )

    def resolve_language(self, language) -> str:
        """Customer language if we have templates for it, else the default."""
        lang = (language or '').strip().lower()[:2]
        return lang if lang in SUPPORTED_LANGUAGES else self.default_language

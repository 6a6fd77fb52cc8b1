import pytest
from decimal import Decimal
import os
import tempfile
import uuid

# Throwaway SQLite file unless a database is provided (e.g. by Docker)
if 'TEST_DATABASE_URL' not in os.environ:
    os.environ['TEST_DATABASE_URL'] = 'sqlite:///' + os.path.join(tempfile.mkdtemp(), 'printshop-test.db')

from printshop import create_app
from printshop import database
from printshop.database import Base, get_session
from printshop.models import AppUser, UserRole, RoleName, Quote, GiftCard, TaxSettings
from printshop.settings import PipelineSettings


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    database.create_all()
    yield app
    database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session inside an app context; every table is emptied afterwards."""
    with app.app_context():
        session = get_session()
        yield session
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture(scope='function')
def settings():
    """Pipeline settings matching TestingConfig."""
    return PipelineSettings(
        default_language='es',
        default_tax_rate=Decimal('0'),
        invoice_due_days=30,
        company_name='Thuis3D.be',
        company_email='info@thuis3d.be',
        site_url='https://thuis3d.test',
    )


@pytest.fixture(scope='function')
def tax_21(session):
    """Enabled 21% VAT row."""
    row = TaxSettings(tax_name='IVA', tax_rate=Decimal('21.00'), is_enabled=True)
    session.add(row)
    session.commit()
    return row


def _make_user(session, role=RoleName.CLIENT.value, name='Test User'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{role}-{suffix}@test.com',
        full_name=name,
        active=True
    )
    token = user.issue_api_token()
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role=role))
    session.commit()
    user.api_token = token  # clear token, only kept on the test object
    return user


@pytest.fixture(scope='function')
def customer(session):
    """Quote owner."""
    return _make_user(session, name='Ana García')


@pytest.fixture(scope='function')
def other_customer(session):
    """A customer who does not own the quote."""
    return _make_user(session, name='Otro Cliente')


@pytest.fixture(scope='function')
def admin(session):
    """Shop administrator."""
    return _make_user(session, role=RoleName.ADMIN.value, name='Admin')


@pytest.fixture(scope='function')
def quote(session, customer):
    """Taxable file-upload quote for €100 plus €5 shipping, quantity 2."""
    quote = Quote(
        user_id=customer.id,
        customer_name='Ana García',
        customer_email='ana@example.com',
        customer_language='es',
        quote_type='file_upload',
        description='Soporte para monitor en PETG',
        estimated_price=Decimal('100.00'),
        shipping_cost=Decimal('5.00'),
        tax_enabled=None,
        quantity=2,
        status='aprobado',
        address='Kerkstraat 1',
        city='Gent',
        postal_code='9000',
        country='BE',
    )
    session.add(quote)
    session.commit()
    return quote


@pytest.fixture(scope='function')
def gift_card(session):
    """Active gift card with €100 balance."""
    card = GiftCard(
        code='GIFT-TEST-100',
        recipient_email='friend@example.com',
        sender_name='Ana',
        initial_amount=Decimal('100.00'),
        current_balance=Decimal('100.00'),
        is_active=True
    )
    session.add(card)
    session.commit()
    return card


@pytest.fixture(scope='function')
def auth_header():
    """Build the Authorization header for a fixture user."""
    def build(user):
        return {'Authorization': f'Bearer {user.api_token}'}
    return build

"""
Pytest fixtures for timeledger backend tests.

Provides the application, a per-test clean database, tenant fixtures and
caller-header helpers.
"""

from datetime import datetime

import pytest

from timeledger import create_app
from timeledger.extensions import db
from timeledger.models import Company, Employee

# Monday
WORK_DAY = datetime(2024, 3, 4)
NOW = datetime(2024, 3, 5, 12, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test; the schema is kept."""
    # Core deletes bypass the append-only ORM listeners.
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def company(db_session):
    company = Company(name="Acme Industria Ltda", tax_id="12345678000195", timezone="UTC")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def other_company(db_session):
    company = Company(name="Beta Comercio SA", tax_id="98765432000110", timezone="UTC")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def employee(db_session, company):
    employee = Employee(company_id=company.id, name="Ana Souza", tax_id="12345678901", registration="E001")
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def coworker(db_session, company):
    employee = Employee(company_id=company.id, name="Bruno Lima", tax_id="10987654321", registration="E002")
    db_session.add(employee)
    db_session.commit()
    return employee


def caller_headers(company_id: int, *, user_id: int = 1, employee_id: int | None = None,
                   role: str = "EMPLOYEE") -> dict:
    """Helper to build the gateway-supplied caller context headers."""
    headers = {
        'X-User-Id': str(user_id),
        'X-Company-Id': str(company_id),
        'X-Role': role,
    }
    if employee_id is not None:
        headers['X-Employee-Id'] = str(employee_id)
    return headers


def at(hhmm: str, day: datetime = WORK_DAY) -> datetime:
    """Timestamp on the reference day from "HH:MM"."""
    hours, minutes = hhmm.split(":")
    return day.replace(hour=int(hours), minute=int(minutes))

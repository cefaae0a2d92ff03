"""
Pytest fixtures for kitchledger backend tests.

Provides test database setup, two isolated tenants with branches, role
contexts, a batch factory and the test client.
"""

from datetime import timedelta

import pytest
from kitchledger import create_app
from kitchledger.config import TestConfig
from kitchledger.extensions import db
from kitchledger.models import Tenant, Branch
from kitchledger.services import inventory_service
from kitchledger.services.tenant_service import TenantContext
from kitchledger.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first restaurant account)."""
    tenant = Tenant(name="Tenant A - Bistro", code="BISTRO", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second restaurant account)."""
    tenant = Tenant(name="Tenant B - Diner", code="DINER", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch_a(db_session, tenant_a):
    """Create Branch A1 in Tenant A."""
    branch = Branch(tenant_id=tenant_a.id, name="Downtown")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, tenant_a):
    """Create a second branch in Tenant A."""
    branch = Branch(tenant_id=tenant_a.id, name="Harbour")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, tenant_b):
    """Create Branch B1 in Tenant B."""
    branch = Branch(tenant_id=tenant_b.id, name="Downtown")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def admin_a(tenant_a):
    """Restaurant admin of Tenant A (tenant-wide, direct mutation, reviewer)."""
    return TenantContext(tenant_id=tenant_a.id, branch_id=None, user_id=1, role="RESTAURANT_ADMIN")


@pytest.fixture(scope='function')
def branch_admin_a(tenant_a, branch_a):
    """Branch admin pinned to Branch A1."""
    return TenantContext(tenant_id=tenant_a.id, branch_id=branch_a.id, user_id=2, role="BRANCH_ADMIN")


@pytest.fixture(scope='function')
def admin_b(tenant_b):
    """Restaurant admin of Tenant B."""
    return TenantContext(tenant_id=tenant_b.id, branch_id=None, user_id=3, role="RESTAURANT_ADMIN")


@pytest.fixture(scope='function')
def make_batch(db_session):
    """
    Factory for received batches.

    received_days_ago orders batches: larger means older, consumed first.
    """
    def _make(ctx, branch, item_name, quantity_milli, unit_cost_cents,
              unit="kg", received_days_ago=1, expires_in_days=None, category="General"):
        received_at = utcnow() - timedelta(days=received_days_ago)
        expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days is not None else None
        return inventory_service.add_batch(
            ctx,
            item_name=item_name,
            unit=unit,
            quantity_milli=quantity_milli,
            unit_cost_cents=unit_cost_cents,
            branch_id=branch.id,
            category=category,
            received_at=received_at,
            expires_at=expires_at,
        )
    return _make


@pytest.fixture(scope='function')
def headers_for():
    """Gateway identity headers for a context."""
    return identity_headers


def identity_headers(ctx: TenantContext) -> dict:
    headers = {}
    if ctx.tenant_id is not None:
        headers['X-Tenant-Id'] = str(ctx.tenant_id)
    if ctx.branch_id is not None:
        headers['X-Branch-Id'] = str(ctx.branch_id)
    if ctx.user_id is not None:
        headers['X-User-Id'] = str(ctx.user_id)
    if ctx.role is not None:
        headers['X-User-Role'] = ctx.role
    return headers

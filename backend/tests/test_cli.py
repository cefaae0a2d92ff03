# Overview: Pytest coverage for the Flask CLI command groups.

from kitchledger.extensions import db
from kitchledger.models import Branch, Tenant


class TestTenantCommands:

    def test_create_tenant_and_branch(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['tenants', 'create', '--name', 'Noodle Bar', '--code', 'NOODLE'])
        assert 'PASS Created tenant' in result.output
        tenant = db.session.query(Tenant).filter_by(code='NOODLE').one()

        result = runner.invoke(args=['tenants', 'add-branch', '--tenant-id', str(tenant.id), '--name', 'Harbour'])
        assert 'PASS Created branch' in result.output
        assert db.session.query(Branch).filter_by(tenant_id=tenant.id).count() == 1

        listed = runner.invoke(args=['tenants', 'list'])
        assert 'Noodle Bar' in listed.output

    def test_duplicate_code_refused(self, app, db_session, tenant_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['tenants', 'create', '--name', 'Copy', '--code', tenant_a.code])
        assert 'FAIL' in result.output
        assert db.session.query(Tenant).count() == 1


class TestInventoryCommands:

    def test_expiring_report(self, app, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Cream", 1000, 300, unit="l", received_days_ago=5, expires_in_days=1)
        runner = app.test_cli_runner()

        result = runner.invoke(args=['inventory', 'expiring', '--tenant-id', str(admin_a.tenant_id)])

        assert result.exit_code == 0
        assert 'EXPIRING (1)' in result.output
        assert 'Cream' in result.output

    def test_unknown_tenant_fails(self, app, db_session):
        result = app.test_cli_runner().invoke(args=['inventory', 'low-stock', '--tenant-id', '999'])
        assert result.exit_code != 0
        assert 'not found' in result.output

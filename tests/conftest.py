import os
# before sitestock is imported: config classes read env at import time
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
from sitestock import create_app
from sitestock.extensions import db
from sitestock.models import Account, User, TeamMember, InventoryLocation, Material
from sitestock.models.team_member import ROLE_OWNER, STATUS_ACTIVE, STATUS_INVITED
from sitestock.utils.helpers import utcnow


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "MAIL_SUPPRESS_SEND": True,
        "APP_BASE_URL": "http://example.test",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "UPLOAD_FOLDER": str(tmp_path_factory.mktemp("uploads")),
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    # service tests run inside one app context; route tests must not (g is per request)
    with app.app_context():
        yield db.session


@pytest.fixture(autouse=True)
def _db_clean(app):
    yield
    # keeps state hermetic even if a test fails mid-transaction
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


class Factory:
    """Tiny builders for rows the services expect to already exist."""

    def __init__(self):
        self._seq = 0

    def _n(self):
        self._seq += 1
        return self._seq

    def account(self, name=None):
        acc = Account(name=name or f"Site {self._n()}", is_active=True)
        db.session.add(acc)
        db.session.flush()
        return acc

    def member(self, account, role=ROLE_OWNER, *, email=None, password="secret123", active=True, crew_id=None,
               first_name=None):
        email = email or f"user{self._n()}@example.com"
        user = None
        if active:
            user = db.session.query(User).filter_by(email=email).one_or_none()
            if user is None:
                user = User(email=email, account_id=account.id, is_active=True)
                user.set_password(password)
                db.session.add(user)
                db.session.flush()
        m = TeamMember(
            account_id=account.id,
            user_id=user.id if user else None,
            email=email,
            first_name=first_name,
            role=role,
            status=STATUS_ACTIVE if active else STATUS_INVITED,
            crew_id=crew_id,
            accepted_at=utcnow() if active else None,
        )
        db.session.add(m)
        db.session.flush()
        return m

    def location(self, account, label=None):
        loc = InventoryLocation(account_id=account.id, label=label or f"Container {self._n()}")
        db.session.add(loc)
        db.session.flush()
        return loc

    def material(self, account, location=None, *, title=None, qty=0, base=None, unit="szt", family_key=None):
        m = Material(
            account_id=account.id,
            inventory_location_id=location.id if location else None,
            title=title or f"Material {self._n()}",
            unit=unit,
            family_key=family_key,
            base_quantity=base if base is not None else qty,
            current_quantity=qty,
        )
        db.session.add(m)
        db.session.flush()
        return m


@pytest.fixture()
def make():
    return Factory()


def login(client, member_or_user_id, account_id):
    """Put a signed-in user and current account into the test client's session."""
    user_id = getattr(member_or_user_id, "user_id", member_or_user_id)
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user_id)
        sess["_fresh"] = True
        sess["current_account_id"] = account_id

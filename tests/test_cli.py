from sitestock.extensions import db
from sitestock.models import TeamMember, User, Material
from conftest import Factory


def test_bootstrap_owner_creates_account_and_membership(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "bootstrap", "owner", "--account-name", "Depot", "--email", "boss@example.com", "--password", "pw123456",
    ])
    assert result.exit_code == 0, result.output
    assert "Bootstrap complete" in result.output
    with app.app_context():
        user = User.query.filter_by(email="boss@example.com").one()
        assert user.check_password("pw123456")
        m = TeamMember.query.filter_by(user_id=user.id).one()
        assert m.role == "owner"
        assert m.status == "active"

    again = runner.invoke(args=[
        "bootstrap", "owner", "--account-name", "Depot", "--email", "BOSS@example.com", "--password", "x",
    ])
    assert again.exit_code != 0
    assert "already exists" in again.output


def test_set_role_refuses_last_owner(app):
    make = Factory()
    with app.app_context():
        acc = make.account()
        make.member(acc, email="solo@example.com")
        make.member(acc, "worker", email="w@example.com")
        account_id = acc.id
        db.session.commit()

    runner = app.test_cli_runner()
    refused = runner.invoke(args=[
        "members", "set-role", "--account-id", str(account_id), "--email", "solo@example.com", "--role", "manager",
    ])
    assert refused.exit_code != 0
    assert "last owner" in refused.output

    ok = runner.invoke(args=[
        "members", "set-role", "--account-id", str(account_id), "--email", "W@example.com", "--role", "storeman",
    ])
    assert ok.exit_code == 0, ok.output
    with app.app_context():
        assert TeamMember.query.filter_by(email="w@example.com").one().role == "storeman"


def test_materials_import_command(app, tmp_path):
    make = Factory()
    with app.app_context():
        acc = make.account()
        make.member(acc)
        account_id = acc.id
        db.session.commit()
    sheet = tmp_path / "catalog.csv"
    sheet.write_text("Title,Unit,Base qty\nGloves,pair,12\n", encoding="utf-8")

    runner = app.test_cli_runner()
    dry = runner.invoke(args=["materials", "import", str(sheet), "--account-id", str(account_id), "--dry-run"])
    assert dry.exit_code == 0, dry.output
    assert "[dry-run] created=1" in dry.output
    with app.app_context():
        assert Material.query.count() == 0

    real = runner.invoke(args=["materials", "import", str(sheet), "--account-id", str(account_id)])
    assert real.exit_code == 0, real.output
    with app.app_context():
        m = Material.query.one()
        assert (m.title, m.unit) == ("Gloves", "pair")

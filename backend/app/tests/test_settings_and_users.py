import pytest
from fastapi import HTTPException

from app.models.equipment import Equipment
from app.models.user import User
from app.routes.equipments import create_equipment
from app.routes.settings import clear_database, get_settings, save_settings
from app.routes.users import create_user, delete_user, update_user
from app.schemas.equipment import EquipmentCreate
from app.schemas.settings import AppSettingsUpdate, ConfirmIn
from app.schemas.user import UserCreate, UserUpdate
from app.services.app_settings import load_settings


def test_certificate_hidden_from_non_admin(db_session, make_user):
    admin = make_user("Admin")
    user = make_user("User")
    save_settings(
        payload=AppSettingsUpdate(company_name="ACME", sso_certificate="-----BEGIN CERT-----"),
        db=db_session,
        current_user=admin,
    )
    assert get_settings(db=db_session, current_user=admin).sso_certificate == "-----BEGIN CERT-----"
    visible = get_settings(db=db_session, current_user=user)
    assert visible.company_name == "ACME"
    assert visible.sso_certificate is None


def test_clear_database_keeps_bootstrap_admin(db_session, make_user):
    admin = make_user("Admin", username="admin")
    make_user("User")
    create_equipment(payload=EquipmentCreate(equipamento="NB", serial="S1"), db=db_session, current_user=admin)

    with pytest.raises(HTTPException) as exc:
        clear_database(payload=ConfirmIn(), db=db_session, current_user=admin)
    assert exc.value.status_code == 422

    result = clear_database(payload=ConfirmIn(confirm=True), db=db_session, current_user=admin)
    assert result["success"] is True
    assert db_session.query(Equipment).count() == 0
    assert [row.username for row in db_session.query(User).all()] == ["admin"]
    assert load_settings(db_session).company_name == "MRR INFORMATICA"


def test_user_crud_rules(db_session, make_user):
    admin = make_user("Admin")
    created = create_user(
        payload=UserCreate(username="novo", real_name="Novo Usuario", email="novo@test.local", password="x1", role="user manager"),
        db=db_session,
        current_user=admin,
    )
    assert created.role == "User Manager"

    with pytest.raises(HTTPException) as exc:
        create_user(
            payload=UserCreate(username="novo", real_name="Outro", email="outro@test.local", password="x"),
            db=db_session,
            current_user=admin,
        )
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        update_user(user_id=created.id, payload=UserUpdate(role="Root"), db=db_session, current_user=admin)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        delete_user(user_id=admin.id, db=db_session, current_user=admin)
    assert exc.value.status_code == 400

    delete_user(user_id=created.id, db=db_session, current_user=admin)
    assert db_session.get(User, created.id) is None

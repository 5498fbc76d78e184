import asyncio
import io
import json

import pytest
from fastapi import HTTPException, UploadFile

from app.models.audit_log import AuditLog
from app.models.equipment import Equipment, EquipmentHistory
from app.routes.approvals import approve_item, pending_approvals, reject_item
from app.routes.equipments import (
    create_equipment,
    delete_equipment,
    deliver_equipment,
    equipment_history,
    equipment_termo,
    import_consolidation,
    preview_consolidation,
    preview_periodic_update,
    list_equipment,
    return_equipment,
    run_periodic_update,
    update_equipment,
)
from app.schemas.approval import ApprovalActionIn
from app.schemas.equipment import (
    EquipmentBulkSaveIn,
    EquipmentCreate,
    EquipmentDeliverIn,
    EquipmentImportItem,
    EquipmentUpdate,
)
from app.services.app_settings import load_settings


def create(db, user, serial="SN-1", **extra):
    payload = EquipmentCreate(equipamento=extra.pop("equipamento", "Notebook Dell"), serial=serial, **extra)
    return create_equipment(payload=payload, db=db, current_user=user)


def test_create_sets_qr_code_and_audit(db_session, make_user):
    admin = make_user("Admin")
    row = create(db_session, admin, status="Estoque")

    assert row.approval_status == "approved"
    assert json.loads(row.qr_code) == {"id": row.id, "serial": "SN-1", "type": "equipment"}
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "CREATE").count() == 1


def test_duplicate_serial_is_conflict(db_session, make_user):
    admin = make_user("Admin")
    create(db_session, admin)
    with pytest.raises(HTTPException) as exc:
        create(db_session, admin, equipamento="Outro")
    assert exc.value.status_code == 409


def test_regular_user_item_is_pending_and_hidden_from_others(db_session, make_user):
    owner = make_user("User")
    other = make_user("User")
    manager = make_user("User Manager")
    row = create(db_session, owner)

    assert row.approval_status == "pending_approval"
    assert [item.id for item in list_equipment(search="", status_filter="", db=db_session, current_user=owner)] == [row.id]
    assert list_equipment(search="", status_filter="", db=db_session, current_user=other) == []
    assert len(list_equipment(search="", status_filter="", db=db_session, current_user=manager)) == 1


def test_update_writes_history_per_changed_field(db_session, make_user):
    admin = make_user("Admin")
    row = create(db_session, admin, local="Matriz", setor="TI")

    update_equipment(
        equipment_id=row.id,
        payload=EquipmentUpdate(local="Filial", setor="TI", serial="SN-1B"),
        db=db_session,
        current_user=admin,
    )
    history = equipment_history(equipment_id=row.id, db=db_session, current_user=admin)
    assert {(item.change_type, item.from_value, item.to_value) for item in history} == {
        ("local", "Matriz", "Filial"),
        ("serial", "SN-1", "SN-1B"),
    }
    assert json.loads(db_session.get(Equipment, row.id).qr_code)["serial"] == "SN-1B"


def test_owner_cannot_edit_after_approval(db_session, make_user):
    admin = make_user("Admin")
    owner = make_user("User")
    row = create(db_session, owner)
    approve_item(payload=ApprovalActionIn(type="equipment", id=row.id), db=db_session, current_user=admin)

    with pytest.raises(HTTPException) as exc:
        update_equipment(equipment_id=row.id, payload=EquipmentUpdate(local="X"), db=db_session, current_user=owner)
    assert exc.value.status_code == 403
    with pytest.raises(HTTPException) as exc:
        delete_equipment(equipment_id=row.id, db=db_session, current_user=owner)
    assert exc.value.status_code == 403


def test_approval_queue_and_reject(db_session, make_user):
    admin = make_user("Admin")
    owner = make_user("User")
    row = create(db_session, owner)

    pending = pending_approvals(db=db_session, current_user=admin)
    assert pending == [{"id": row.id, "name": "Notebook Dell", "type": "equipment", "created_by_id": owner.id}]

    with pytest.raises(HTTPException) as exc:
        reject_item(payload=ApprovalActionIn(type="equipment", id=row.id, reason=" "), db=db_session, current_user=admin)
    assert exc.value.status_code == 422

    result = reject_item(
        payload=ApprovalActionIn(type="equipment", id=row.id, reason="Serial incorreto"),
        db=db_session,
        current_user=admin,
    )
    assert result["changed"] is True
    db_session.refresh(row)
    assert row.approval_status == "rejected"
    assert row.rejection_reason == "Serial incorreto"

    with pytest.raises(HTTPException) as exc:
        approve_item(payload=ApprovalActionIn(type="equipment", id=row.id), db=db_session, current_user=admin)
    assert exc.value.status_code == 422


def test_deliver_and_return_cycle(db_session, make_user):
    admin = make_user("Admin")
    row = create(db_session, admin, status="Estoque")

    delivered = deliver_equipment(
        equipment_id=row.id,
        payload=EquipmentDeliverIn(usuario_atual="Ana", email_colaborador="ana@empresa.com"),
        db=db_session,
        current_user=admin,
    )
    assert delivered.status == "Em Uso"
    assert delivered.condicao_termo == "Assinado - Entrega"

    with pytest.raises(HTTPException) as exc:
        deliver_equipment(
            equipment_id=row.id,
            payload=EquipmentDeliverIn(usuario_atual="Bruno"),
            db=db_session,
            current_user=admin,
        )
    assert exc.value.status_code == 422
    assert db_session.get(Equipment, row.id).usuario_atual == "Ana"

    returned = return_equipment(equipment_id=row.id, db=db_session, current_user=admin)
    assert returned.status == "Estoque"
    assert returned.usuario_anterior == "Ana"
    assert returned.usuario_atual == ""
    assert returned.condicao_termo == "Assinado - Devolução"

    termo = equipment_termo(equipment_id=row.id, tipo="devolucao", formato="html", db=db_session, current_user=admin)
    assert "Ana" in termo.content
    assert "Notebook Dell" in termo.content


def test_delete_cascades_history(db_session, make_user):
    admin = make_user("Admin")
    row = create(db_session, admin, local="A")
    update_equipment(equipment_id=row.id, payload=EquipmentUpdate(local="B"), db=db_session, current_user=admin)

    delete_equipment(equipment_id=row.id, db=db_session, current_user=admin)
    assert db_session.query(EquipmentHistory).count() == 0


def test_replace_inventory_requires_confirmation_and_replaces_everything(db_session, make_user):
    admin = make_user("Admin")
    old = create(db_session, admin, serial="OLD-1")
    update_equipment(equipment_id=old.id, payload=EquipmentUpdate(local="X"), db=db_session, current_user=admin)

    items = [
        EquipmentImportItem(equipamento="NB 1", serial="A1", usuario_atual="Ana", status="Em Uso"),
        EquipmentImportItem(equipamento="NB 2", serial="A2"),
    ]
    with pytest.raises(HTTPException) as exc:
        import_consolidation(payload=EquipmentBulkSaveIn(items=items), db=db_session, current_user=admin)
    assert exc.value.status_code == 422

    result = import_consolidation(payload=EquipmentBulkSaveIn(items=items, confirm=True), db=db_session, current_user=admin)
    assert result.success is True
    assert {row.serial for row in db_session.query(Equipment).all()} == {"A1", "A2"}
    assert db_session.query(EquipmentHistory).count() == 0
    assert all(json.loads(row.qr_code)["id"] == row.id for row in db_session.query(Equipment).all())
    settings = load_settings(db_session)
    assert settings.has_initial_consolidation_run is True
    assert settings.last_absolute_update_timestamp


def test_replace_inventory_rejects_duplicate_serials_without_deleting(db_session, make_user):
    admin = make_user("Admin")
    create(db_session, admin, serial="KEEP-1")
    items = [EquipmentImportItem(serial="a 1"), EquipmentImportItem(serial="A1")]

    with pytest.raises(HTTPException) as exc:
        import_consolidation(payload=EquipmentBulkSaveIn(items=items, confirm=True), db=db_session, current_user=admin)
    assert exc.value.status_code == 422
    assert [row.serial for row in db_session.query(Equipment).all()] == ["KEEP-1"]


def test_periodic_update_is_idempotent(db_session, make_user):
    admin = make_user("Admin")
    existing = create(db_session, admin, serial="P1", local="Matriz")
    items = [
        EquipmentImportItem(serial="P1", usuario_atual="Carla", model="T14"),
        EquipmentImportItem(serial="P2", equipamento="NB novo"),
        EquipmentImportItem(serial=""),
    ]
    payload = EquipmentBulkSaveIn(items=items, confirm=True)

    first = run_periodic_update(payload=payload, db=db_session, current_user=admin)
    assert (first.created, first.updated, first.unchanged, first.skipped) == (1, 1, 0, 1)
    db_session.refresh(existing)
    assert existing.local == "Matriz"
    assert existing.usuario_atual == "Carla"
    history_count = db_session.query(EquipmentHistory).count()
    assert history_count == 2

    second = run_periodic_update(payload=payload, db=db_session, current_user=admin)
    assert (second.created, second.updated, second.unchanged, second.skipped) == (0, 0, 2, 1)
    assert db_session.query(EquipmentHistory).count() == history_count


def csv_upload(text, filename="inventario.csv"):
    return UploadFile(file=io.BytesIO(text.encode("utf-8")), filename=filename)


def as_client_payload(preview):
    # o front-end devolve o JSON da prévia sem alterações
    return EquipmentBulkSaveIn(items=preview.model_dump(mode="json")["items"], confirm=True)


def test_consolidation_preview_roundtrip_keeps_defaults(db_session, make_user):
    admin = make_user("Admin")
    base = "EQUIPAMENTO,SERIAL,LOCAL\nNotebook Dell,B1,Matriz\n"
    absolute = "Nome do dispositivo,Número de série,Nome do usuário atual\nNB-X,A9,Carla\n"

    preview = asyncio.run(
        preview_consolidation(base_file=csv_upload(base), absolute_file=csv_upload(absolute), current_user=admin)
    )
    result = import_consolidation(payload=as_client_payload(preview), db=db_session, current_user=admin)
    assert result.success is True

    rows = {row.serial: row for row in db_session.query(Equipment).all()}
    assert rows["B1"].equipamento == "Notebook Dell"
    assert rows["B1"].local == "Matriz"
    assert rows["B1"].status == "Estoque"
    assert rows["A9"].equipamento == "NB-X"
    assert rows["A9"].status == "Em Uso"

    delivered = deliver_equipment(
        equipment_id=rows["B1"].id,
        payload=EquipmentDeliverIn(usuario_atual="Bruno", email_colaborador="bruno@empresa.com"),
        db=db_session,
        current_user=admin,
    )
    assert delivered.status == "Em Uso"


def test_periodic_preview_roundtrip_only_touches_csv_columns(db_session, make_user):
    admin = make_user("Admin")
    existing = create(db_session, admin, serial="P1", local="Matriz", setor="TI", status="Em Uso", usuario_atual="Ana")
    absolute = "Número de série,Nome do usuário atual\nP1,Carla\n"

    preview = asyncio.run(preview_periodic_update(absolute_file=csv_upload(absolute), current_user=admin))
    payload = as_client_payload(preview)

    first = run_periodic_update(payload=payload, db=db_session, current_user=admin)
    assert first.success is True
    assert (first.created, first.updated) == (0, 1)

    db_session.refresh(existing)
    assert existing.equipamento == "Notebook Dell"
    assert (existing.local, existing.setor, existing.status) == ("Matriz", "TI", "Em Uso")
    assert existing.usuario_atual == "Carla"
    history = db_session.query(EquipmentHistory).filter(EquipmentHistory.equipment_id == existing.id).all()
    assert [item.change_type for item in history] == ["usuario_atual"]

    second = run_periodic_update(payload=payload, db=db_session, current_user=admin)
    assert (second.updated, second.unchanged) == (0, 1)
    assert db_session.query(EquipmentHistory).count() == len(history)

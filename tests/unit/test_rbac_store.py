import pytest

from app.core import rbac_store
from app.core.permissions import USER_LIST
from app.core.rbac_store import RbacStore


def miss_first_lookup(monkeypatch, store, name):
    """Make the store's existence check miss once, as if another writer raced it."""
    real = getattr(store, name)
    calls = []

    def lookup(*args):
        calls.append(args)
        return None if len(calls) == 1 else real(*args)

    monkeypatch.setattr(store, name, lookup)
    return calls


@pytest.fixture(params=["on-conflict", "savepoint"])
def insert_path(request, monkeypatch):
    """Run each race through both insert strategies."""
    if request.param == "savepoint":
        monkeypatch.setattr(rbac_store, "_CONFLICT_FREE_INSERTS", {})
    return request.param


def test_assign_role_reuses_concurrent_assignment(db, roles, make_account, monkeypatch, insert_path):
    member = make_account("member@example.com", role_ids=[roles["user"]])

    with db.transaction() as session:
        store = RbacStore(session)
        calls = miss_first_lookup(monkeypatch, store, "_assignment")
        edge = store.assign_role(member.account_id, roles["user"])
        assert edge is not None
        assert edge.role_id == roles["user"]

    assert len(calls) == 2
    with db.read_session() as session:
        assert RbacStore(session).count_assignments(member.account_id, roles["user"]) == 1


def test_create_role_reuses_concurrent_role(db, monkeypatch, insert_path):
    with db.transaction() as session:
        original_id = RbacStore(session).create_role("editor", "Edits users").id

    with db.transaction() as session:
        store = RbacStore(session)
        miss_first_lookup(monkeypatch, store, "get_role_by_name")
        role_id = store.create_role("editor").id

    assert role_id == original_id
    with db.read_session() as session:
        assert [role.name for role in RbacStore(session).list_roles()] == ["editor"]


def test_create_permission_reuses_concurrent_permission(db, monkeypatch, insert_path):
    with db.transaction() as session:
        original_id = RbacStore(session).create_permission(USER_LIST).id

    with db.transaction() as session:
        store = RbacStore(session)
        miss_first_lookup(monkeypatch, store, "get_permission_by_key")
        permission_id = store.create_permission(USER_LIST).id

    assert permission_id == original_id
    with db.read_session() as session:
        assert len(RbacStore(session).list_permissions()) == 1


def test_assign_permission_reuses_concurrent_grant(db, monkeypatch, insert_path):
    with db.transaction() as session:
        store = RbacStore(session)
        role_id = store.create_role("editor").id
        permission_id = store.create_permission(USER_LIST).id
        store.assign_permission(role_id, permission_id)

    with db.transaction() as session:
        store = RbacStore(session)
        miss_first_lookup(monkeypatch, store, "_grant")
        edge = store.assign_permission(role_id, permission_id)
        assert edge.permission_id == permission_id

    with db.read_session() as session:
        assert RbacStore(session).permission_ids_for_role(role_id) == [permission_id]


def test_lost_race_keeps_earlier_writes_in_transaction(db, roles, make_account, monkeypatch, insert_path):
    member = make_account("member@example.com", role_ids=[roles["user"]])

    with db.transaction() as session:
        store = RbacStore(session)
        store.create_role("auditor")
        miss_first_lookup(monkeypatch, store, "_assignment")
        store.assign_role(member.account_id, roles["user"])

    with db.read_session() as session:
        assert RbacStore(session).get_role_by_name("auditor") is not None


def test_new_rows_are_created_once(db, roles, make_account):
    member = make_account("member@example.com")

    with db.transaction() as session:
        store = RbacStore(session)
        first = store.assign_role(member.account_id, roles["user"])
        second = store.assign_role(member.account_id, roles["user"])
        assert first is second

    with db.read_session() as session:
        assert RbacStore(session).count_assignments(member.account_id, roles["user"]) == 1

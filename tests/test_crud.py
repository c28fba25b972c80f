from decimal import Decimal

import pytest

import crud
from schemas import AttachmentIn, DEFAULT_VOCABULARIES


def attachment(key):
    return AttachmentIn(name=f"{key}.pdf", url=f"/files/{key}", size=10, mime_type="application/pdf", storage_key=key)


def test_insert_and_list(db, make_account):
    created = crud.insert_one(db, make_account(amount="12.345"), [attachment("a1")])
    accounts = crud.list_accounts(db)

    assert [acc.id for acc in accounts] == [created.id]
    assert accounts[0].amount == Decimal("12.35")
    assert [att.storage_key for att in accounts[0].attachments] == ["a1"]


def test_delete_many_returns_storage_keys(db, make_account):
    first = crud.insert_one(db, make_account(), [attachment("k1"), attachment("k2")])
    second = crud.insert_one(db, make_account())

    keys = crud.delete_many(db, [first.id, second.id, 999])
    assert sorted(keys) == ["k1", "k2"]
    assert crud.list_accounts(db) == []


def test_update_status_many(db, make_account):
    ids = [acc.id for acc in crud.insert_many(db, [make_account(), make_account(), make_account()])]

    assert crud.update_status_many(db, ids[:2], "PAID") == 2
    assert [acc.status for acc in crud.list_accounts(db)] == ["PAID", "PAID", "PENDING"]
    assert crud.update_status_many(db, [], "PAID") == 0


def test_remove_attachment(db, make_account):
    account = crud.insert_one(db, make_account(), [attachment("k1")])
    attachment_id = account.attachments[0].id

    assert crud.remove_attachment(db, account, 12345) is None
    assert crud.remove_attachment(db, account, attachment_id) == "k1"
    assert crud.get_account(db, account.id).attachments == []


def test_vocabularies_seeded_and_editable(db):
    assert crud.get_vocabularies(db) == DEFAULT_VOCABULARIES

    crud.add_vocabulary_value(db, "categories", " travel ")
    assert crud.get_vocabularies(db).account_categories[-1] == "TRAVEL"

    crud.rename_vocabulary_value(db, "statuses", 0, "open")
    assert crud.get_vocabularies(db).account_statuses[0] == "OPEN"


@pytest.mark.parametrize(
    "call",
    [
        lambda db: crud.add_vocabulary_value(db, "colors", "RED"),
        lambda db: crud.add_vocabulary_value(db, "types", "expense"),
        lambda db: crud.add_vocabulary_value(db, "types", "  "),
        lambda db: crud.rename_vocabulary_value(db, "types", 9, "NEW"),
        lambda db: crud.rename_vocabulary_value(db, "types", 0, "PURCHASE"),
    ],
)
def test_vocabulary_errors(db, call):
    with pytest.raises(crud.VocabularyError):
        call(db)


def test_vocabulary_check(make_account):
    issues = DEFAULT_VOCABULARIES.check(make_account(category="travel", status="LATE"))
    assert issues == ["unknown category 'TRAVEL'", "unknown status 'LATE'"]

import pytest

import crud
from models import Theme, UserRole
from schemas import UserCreate, UserUpdate
from utils_auth import PasswordPolicyError, check_password_policy, hash_password, verify_password


def test_password_policy():
    check_password_policy("Str0ng@pass")
    check_password_policy("Short1@A")
    for weak in ["Sh0rt@", "alllower1@", "NoDigits@@", "NoSymbol123", ""]:
        with pytest.raises(PasswordPolicyError):
            check_password_policy(weak)


def test_hash_roundtrip():
    hashed = hash_password("Str0ng@pass")
    assert hashed != "Str0ng@pass"
    assert verify_password("Str0ng@pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("anything", "")


def test_seeded_admin_exists(db):
    admin = crud.get_user_by_username(db, "admin")
    assert admin is not None
    assert admin.role == UserRole.ADMIN


def test_create_user_checks_policy_and_duplicates(db):
    user = crud.create_user(db, UserCreate(username="ana", email="Ana@Example.com", password="Ana@12345"))
    assert user.email == "ana@example.com"
    assert user.preferred_theme == Theme.SYSTEM

    with pytest.raises(crud.DuplicateUserError):
        crud.create_user(db, UserCreate(username="ana", email="other@example.com", password="Ana@12345"))
    with pytest.raises(PasswordPolicyError):
        crud.create_user(db, UserCreate(username="bob", email="bob@example.com", password="weak"))


def test_update_user_keeps_password_when_blank(db):
    user = crud.create_user(db, UserCreate(username="ana", email="ana@example.com", password="Ana@12345"))
    crud.update_user(db, user, UserUpdate(username="ana", full_name="Ana", email="ana@example.com", role=UserRole.ADMIN))

    assert user.full_name == "Ana"
    assert user.role == UserRole.ADMIN
    assert verify_password("Ana@12345", user.password_hash)


def test_reset_password_requires_matching_email(db):
    crud.create_user(db, UserCreate(username="ana", email="ana@example.com", password="Ana@12345"))

    with pytest.raises(crud.UnknownUserError):
        crud.reset_password(db, "ana", "someone@example.com", "New@pass1")

    user = crud.reset_password(db, "ana", "ANA@example.com", "New@pass1")
    assert verify_password("New@pass1", user.password_hash)

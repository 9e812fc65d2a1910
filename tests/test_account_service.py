import logging

import pytest

from app.config import settings
from app.core.exceptions import (
    CredentialsException, ForbiddenException, InvalidOTPException, NotFoundException,
    ProvisioningException, ValidationException,
)
from app.core.security import decode_access_token, decode_refresh_token, verify_password
from app.models.account import STATUS_ACTIVE, STATUS_DEACTIVATED, STATUS_PASSWORD_CHANGE_REQUIRED
from app.services.account_service import AccountService

from tests.conftest import DEFAULT_PASSWORD


# ── find_or_provision / OAuth ─────────────────────────────────────────────────

def test_provision_new_account(account_service, store):
    result = account_service.find_or_provision("New@X.com")

    assert result.is_new is True
    assert len(result.temporary_credential) == 8
    assert result.temporary_credential.isalnum()
    account = result.account
    assert account.email == "new@x.com"
    assert account.status == STATUS_PASSWORD_CHANGE_REQUIRED
    assert account.provider == "google"
    assert account.email_verified is True
    assert account.role == "User"
    assert account.username_login.startswith("new_")

    row = store.fetch_one("account", {"id": account.id})
    assert row["password_login"] != result.temporary_credential
    assert verify_password(result.temporary_credential, row["password_login"])


def test_provision_returns_existing_account(account_service, make_account):
    existing = make_account(email="old@x.com")
    result = account_service.find_or_provision("old@x.com")
    assert result.is_new is False
    assert result.temporary_credential is None
    assert result.account.id == existing.id


def test_provision_twice_returns_same_account(account_service, store):
    first = account_service.find_or_provision("e@x.com")
    second = account_service.find_or_provision("E@x.com")

    assert [first.is_new, second.is_new] == [True, False]
    assert second.account.id == first.account.id
    assert second.temporary_credential is None
    assert len(store.fetch("account", {"email": "e@x.com"})) == 1


def test_provision_fails_without_default_role(store, otp_issuer, dispatcher):
    custom = settings.model_copy(update={"default_role_name": "Missing"})
    service = AccountService(store, otp_issuer, dispatcher, custom)
    with pytest.raises(ProvisioningException):
        service.find_or_provision("new@x.com")
    assert store.fetch("account") == []


def test_oauth_login_new_account_mails_temp_password(account_service, dispatcher):
    result = account_service.handle_oauth_login("new@x.com")
    assert result.password_change_required is True
    assert result.is_new is True
    assert result.access_token is None

    destination, data = dispatcher.last("temporary_password")
    assert destination == "new@x.com"
    assert len(data["temporary_password"]) == 8
    assert data["username_login"] == result.account.username_login


def test_oauth_login_status_two_account_gets_no_tokens(account_service, dispatcher, make_account):
    make_account(email="pending@x.com", status=STATUS_PASSWORD_CHANGE_REQUIRED)
    result = account_service.handle_oauth_login("pending@x.com")
    assert result.password_change_required is True
    assert result.access_token is None
    assert dispatcher.enqueued == []


def test_oauth_login_active_account_gets_tokens(account_service, make_account):
    account = make_account(email="active@x.com")
    result = account_service.handle_oauth_login("active@x.com")
    assert result.password_change_required is False
    assert decode_access_token(result.access_token)["sub"] == account.id
    assert decode_refresh_token(result.refresh_token)["sub"] == account.id


def test_oauth_login_deactivated_account_is_refused(account_service, make_account):
    make_account(email="gone@x.com", status=STATUS_DEACTIVATED)
    with pytest.raises(ForbiddenException):
        account_service.handle_oauth_login("gone@x.com")


# ── Temporary password scenario ───────────────────────────────────────────────

def test_temporary_password_lifecycle(account_service):
    provisioned = account_service.find_or_provision("new@x.com")
    temp = provisioned.temporary_credential

    account = account_service.change_temporary_password("new@x.com", temp, "NewPass1", "NewPass1")
    assert account.status == STATUS_ACTIVE

    with pytest.raises(CredentialsException):
        account_service.authenticate(account.username_login, temp)
    login = account_service.authenticate(account.username_login, "NewPass1")
    assert login.password_change_required is False


def test_temporary_password_confirmation_mismatch(account_service):
    temp = account_service.find_or_provision("new@x.com").temporary_credential
    with pytest.raises(ValidationException):
        account_service.change_temporary_password("new@x.com", temp, "NewPass1", "NewPass2")
    # nothing changed, the temp password still works
    assert account_service.authenticate("new@x.com", temp).password_change_required


def test_temporary_password_wrong_credential(account_service):
    account_service.find_or_provision("new@x.com")
    with pytest.raises(CredentialsException):
        account_service.change_temporary_password("new@x.com", "wrongpw1", "NewPass1", "NewPass1")


def test_temporary_password_only_once(account_service):
    temp = account_service.find_or_provision("new@x.com").temporary_credential
    account_service.change_temporary_password("new@x.com", temp, "NewPass1", "NewPass1")
    with pytest.raises(CredentialsException):
        account_service.change_temporary_password("new@x.com", temp, "Other123", "Other123")


def test_temporary_password_lost_race_is_rejected(account_service, store):
    """A change landing between our read and our write leaves zero rows to update."""
    temp = account_service.find_or_provision("new@x.com").temporary_credential
    original_fetch_one = store.fetch_one

    def fetch_then_race(table, filters):
        row = original_fetch_one(table, filters)
        if row and table == "account":
            store.update("account", {"id": row["id"]}, {"password_login": "changed-elsewhere"})
        return row

    store.fetch_one = fetch_then_race
    with pytest.raises(CredentialsException):
        account_service.change_temporary_password("new@x.com", temp, "NewPass1", "NewPass1")


# ── Authenticated change ──────────────────────────────────────────────────────

def test_change_password_activates_and_returns_tokens(account_service, make_account):
    account = make_account(status=STATUS_PASSWORD_CHANGE_REQUIRED)
    result = account_service.change_password(account.id, DEFAULT_PASSWORD, "Fresh1234", "Fresh1234")
    assert result.account.status == STATUS_ACTIVE
    assert decode_access_token(result.access_token)["sub"] == account.id
    account_service.authenticate(account.username_login, "Fresh1234")


def test_change_password_wrong_current(account_service, make_account):
    account = make_account()
    with pytest.raises(CredentialsException):
        account_service.change_password(account.id, "nope12345", "Fresh1234", "Fresh1234")


def test_change_password_confirmation_checked_first(account_service):
    with pytest.raises(ValidationException):
        account_service.change_password("does-not-matter", "x", "Fresh1234", "Fresh9999")


# ── Login / refresh ───────────────────────────────────────────────────────────

def test_authenticate_by_handle_or_email(account_service, make_account):
    account = make_account(email="alice@x.com", username_login="alice")
    assert account_service.authenticate("alice", DEFAULT_PASSWORD).account.id == account.id
    assert account_service.authenticate("Alice@X.com", DEFAULT_PASSWORD).account.id == account.id


def test_authenticate_status_two_flags_password_change(account_service, make_account):
    account = make_account(status=STATUS_PASSWORD_CHANGE_REQUIRED)
    result = account_service.authenticate(account.username_login, DEFAULT_PASSWORD)
    assert result.password_change_required is True
    assert result.access_token


def test_authenticate_rejects_deactivated_and_unknown(account_service, make_account):
    gone = make_account(status=STATUS_DEACTIVATED)
    with pytest.raises(CredentialsException):
        account_service.authenticate(gone.username_login, DEFAULT_PASSWORD)
    with pytest.raises(CredentialsException):
        account_service.authenticate("ghost", DEFAULT_PASSWORD)


def test_refresh_picks_up_role_and_echoes_refresh_token(account_service, make_account, store):
    account = make_account()
    refresh = account_service.authenticate(account.username_login, DEFAULT_PASSWORD).refresh_token

    admin_role = store.fetch_one("role", {"role": "Admin"})
    store.update("account", {"id": account.id}, {"role_id": admin_role["id"]})

    access, echoed = account_service.refresh_access_token(refresh)
    assert echoed == refresh
    assert decode_access_token(access)["role"] == "ADMIN"


def test_refresh_for_deactivated_account(account_service, make_account):
    account = make_account()
    refresh = account_service.authenticate(account.username_login, DEFAULT_PASSWORD).refresh_token
    account_service.soft_delete(account.id)
    with pytest.raises(NotFoundException):
        account_service.refresh_access_token(refresh)


def test_refresh_rejects_access_token(account_service, make_account):
    account = make_account()
    access = account_service.authenticate(account.username_login, DEFAULT_PASSWORD).access_token
    with pytest.raises(CredentialsException):
        account_service.refresh_access_token(access)


# ── OTP-gated registration and reset ──────────────────────────────────────────

def test_request_otp_for_registration(account_service, dispatcher, otp_issuer):
    assert account_service.request_otp("Fresh@X.com", "register") is True
    destination, data = dispatcher.last("register")
    assert destination == "fresh@x.com"
    assert data["ttl_minutes"] == 5
    assert otp_issuer.verify("fresh@x.com", data["otp"], "register")


def test_request_otp_register_for_taken_email(account_service, make_account):
    make_account(email="taken@x.com")
    with pytest.raises(ValidationException):
        account_service.request_otp("taken@x.com", "register")


def test_request_otp_forgot_for_unknown_email(account_service):
    with pytest.raises(NotFoundException):
        account_service.request_otp("ghost@x.com", "forgot")


def test_request_otp_reports_full_queue(store, otp_issuer, make_account):
    from tests.conftest import RecordingDispatcher
    service = AccountService(store, otp_issuer, RecordingDispatcher(accept=False), settings)
    make_account(email="a@x.com")
    assert service.request_otp("a@x.com", "forgot") is False
    # the code was still issued
    assert otp_issuer.has_valid_otp("a@x.com")


def test_register_with_valid_code(account_service, dispatcher, otp_issuer):
    account_service.request_otp("reg@x.com", "register")
    code = dispatcher.last("register")[1]["otp"]

    account = account_service.register("reg@x.com", code, "Password1", username="reggie")
    assert account.status == STATUS_ACTIVE
    assert account.provider == "email"
    assert account.username_login == "reggie"
    assert account.role == "User"
    assert not otp_issuer.has_valid_otp("reg@x.com")


def test_register_generates_handle_when_no_username(account_service, otp_issuer):
    code = otp_issuer.generate("bob@x.com", "register")
    account = account_service.register("bob@x.com", code, "Password1")
    assert account.username_login.startswith("bob_")
    assert account.username == account.username_login


def test_register_with_wrong_code_keeps_code(account_service, otp_issuer):
    code = otp_issuer.generate("reg@x.com", "register")
    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(InvalidOTPException):
        account_service.register("reg@x.com", wrong, "Password1")
    assert otp_issuer.has_valid_otp("reg@x.com")


def test_register_rechecks_email_at_completion(account_service, otp_issuer, make_account):
    code = otp_issuer.generate("race@x.com", "register")
    make_account(email="race@x.com")
    with pytest.raises(ValidationException):
        account_service.register("race@x.com", code, "Password1")


def test_register_with_taken_username(account_service, otp_issuer, make_account):
    make_account(username_login="taken")
    code = otp_issuer.generate("reg@x.com", "register")
    with pytest.raises(ValidationException):
        account_service.register("reg@x.com", code, "Password1", username="taken")


def test_register_code_cannot_reset_password(account_service, otp_issuer, make_account):
    make_account(email="a@x.com")
    code = otp_issuer.generate("a@x.com", "register")
    with pytest.raises(InvalidOTPException):
        account_service.reset_password("a@x.com", code, "Another123")


def test_reset_password_leaves_status_alone(account_service, otp_issuer, make_account):
    account = make_account(email="a@x.com", status=STATUS_PASSWORD_CHANGE_REQUIRED)
    code = otp_issuer.generate("a@x.com", "forgot")
    account_service.reset_password("a@x.com", code, "Another123")

    result = account_service.authenticate(account.username_login, "Another123")
    assert result.account.status == STATUS_PASSWORD_CHANGE_REQUIRED
    assert not otp_issuer.has_valid_otp("a@x.com")


def test_reset_password_for_missing_account(account_service, otp_issuer):
    code = otp_issuer.generate("ghost@x.com", "forgot")
    with pytest.raises(NotFoundException):
        account_service.reset_password("ghost@x.com", code, "Another123")


# ── Soft delete / restore / search ────────────────────────────────────────────

def test_soft_delete_and_restore(account_service, make_account):
    account = make_account()
    assert account_service.soft_delete(account.id).status == STATUS_DEACTIVATED
    with pytest.raises(NotFoundException):
        account_service.get_account(account.id)
    assert [a.id for a in account_service.list_deleted()] == [account.id]

    assert account_service.restore(account.id).status == STATUS_ACTIVE
    assert account_service.get_account(account.id).id == account.id
    assert account_service.list_deleted() == []


def test_soft_delete_twice_is_not_found(account_service, make_account):
    account = make_account()
    account_service.soft_delete(account.id)
    with pytest.raises(NotFoundException):
        account_service.soft_delete(account.id)


def test_restore_live_account_is_not_found(account_service, make_account):
    account = make_account()
    with pytest.raises(NotFoundException):
        account_service.restore(account.id)


def test_search_skips_deactivated_accounts(account_service, make_account):
    live = make_account(username="Carol Live")
    make_account(username="Carol Gone", status=STATUS_DEACTIVATED)
    assert [a.id for a in account_service.search_accounts("carol")] == [live.id]
    assert account_service.search_accounts("   ") == []


def test_verify_otp_then_consume(account_service, otp_issuer):
    code = otp_issuer.generate("a@x.com", "forgot")
    assert account_service.verify_otp("a@x.com", code, "forgot")
    account_service.consume_otp("A@x.com")
    assert not account_service.verify_otp("a@x.com", code, "forgot")


def test_request_otp_again_replaces_live_code(account_service, dispatcher, otp_issuer, caplog):
    account_service.request_otp("reg@x.com", "register")
    first = dispatcher.last("register")[1]["otp"]
    with caplog.at_level(logging.INFO, logger="app.services.account_service"):
        account_service.request_otp("reg@x.com", "register")
    second = dispatcher.last("register")[1]["otp"]

    assert "Replacing a live OTP for reg@x.com" in caplog.text
    assert otp_issuer.verify("reg@x.com", second, "register")
    if first != second:
        assert not otp_issuer.verify("reg@x.com", first, "register")


# ── Profile ───────────────────────────────────────────────────────────────────

def test_update_profile_changes_only_given_fields(account_service, make_account):
    account = make_account(username="Old Name", description="keep me")
    updated = account_service.update_profile(account.id, {
        "username": "New Name", "place_of_residence": "Hanoi", "image": None,
        "password_login": "sneaky", "status": 0,
    })
    assert updated.username == "New Name"
    assert updated.place_of_residence == "Hanoi"
    assert updated.description == "keep me"
    assert updated.status == STATUS_ACTIVE
    account_service.authenticate(account.username_login, DEFAULT_PASSWORD)


def test_update_profile_empty_patch(account_service, make_account):
    account = make_account()
    with pytest.raises(ValidationException):
        account_service.update_profile(account.id, {"image": None})


def test_update_profile_of_deactivated_account(account_service, make_account):
    account = make_account(status=STATUS_DEACTIVATED)
    with pytest.raises(NotFoundException):
        account_service.update_profile(account.id, {"description": "hello"})

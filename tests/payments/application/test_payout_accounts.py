"""Application tests for payout destination registration."""

import pytest
from payments.payout_account.account import PayoutAccount, destination_issue
from payments.payout_account.registration import RegisterPayoutAccount, all_payout_accounts, payout_account_for
from protean import current_domain
from protean.exceptions import ValidationError


def _register(**kwargs):
    kwargs.setdefault("brand_id", "brand-001")
    kwargs.setdefault("account_holder", "Kora Studio LLP")
    return current_domain.process(RegisterPayoutAccount(**kwargs), asynchronous=False)


class TestRegisterPayoutAccount:
    def test_bank_account(self):
        _register(brand_name="Kora", account_number="50100012345678", ifsc_code="hdfc0001234")
        account = payout_account_for("brand-001")
        assert account.ifsc_code == "HDFC0001234"
        assert account.destination().mode == "bank_account"
        assert account.missing_details() == []
        assert destination_issue(account) is None

    def test_upi(self):
        _register(upi_id="kora@okaxis")
        assert payout_account_for("brand-001").destination().mode == "vpa"

    def test_re_registering_replaces_details(self):
        _register(brand_name="Kora", upi_id="kora@okaxis")
        _register(account_number="50100012345678", ifsc_code="HDFC0001234")

        account = payout_account_for("brand-001")
        assert account.upi_id is None
        assert account.account_number == "50100012345678"
        assert account.brand_name == "Kora"
        assert len(all_payout_accounts()) == 1

    def test_incomplete_account_blocks_payouts(self):
        _register(account_number="50100012345678")
        account = payout_account_for("brand-001")
        assert account.missing_details() == ["ifsc_code"]
        assert destination_issue(account) == "Missing payout destination details: ifsc_code"

    def test_missing_account(self):
        assert payout_account_for("brand-404") is None
        assert destination_issue(None) == "Missing payout destination details"

    @pytest.mark.parametrize(
        "details, field",
        [
            ({"ifsc_code": "HDFC1234"}, "ifsc_code"),
            ({"account_number": "12AB"}, "account_number"),
            ({"upi_id": "not-a-upi"}, "upi_id"),
        ],
    )
    def test_invalid_details(self, details, field):
        with pytest.raises(ValidationError) as exc:
            _register(**details)
        assert field in exc.value.messages
        assert payout_account_for("brand-001") is None


class TestPayoutAccountAggregate:
    def test_update_raises_event(self):
        account = PayoutAccount(brand_id="brand-001", account_holder="Kora")
        account.update_details(account_holder="Kora", upi_id="kora@okaxis")
        event = account._events[-1]
        assert event.mode == "vpa"
        assert event.complete is True

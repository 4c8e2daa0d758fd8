"""PayoutAccount aggregate (CQRS) — where a brand's settlements are sent.

One account per brand, keyed by the brand id. A brand can be paid by bank
transfer (account number plus IFSC) or UPI. An account missing both is a
data-integrity problem that blocks payouts until fixed.
"""

import re
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from payments.domain import payments
from payments.gateway.port import PayoutDestination
from payments.payout.events import PayoutAccountRegistered

IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
UPI_PATTERN = re.compile(r"^[\w.\-]{2,256}@[a-zA-Z][a-zA-Z0-9]{1,63}$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{9,18}$")


@payments.aggregate
class PayoutAccount:
    brand_id = Identifier(identifier=True, required=True)
    brand_name = String(max_length=255)
    account_holder = String(required=True, max_length=255)
    account_number = String(max_length=18)
    ifsc_code = String(max_length=11)
    upi_id = String(max_length=320)
    updated_at = DateTime()

    @staticmethod
    def validate_details(account_number=None, ifsc_code=None, upi_id=None):
        errors = {}
        if account_number and not ACCOUNT_NUMBER_PATTERN.match(account_number):
            errors["account_number"] = ["Account number must be 9 to 18 digits"]
        if ifsc_code and not IFSC_PATTERN.match(ifsc_code):
            errors["ifsc_code"] = ["IFSC code must look like ABCD0123456"]
        if upi_id and not UPI_PATTERN.match(upi_id):
            errors["upi_id"] = ["UPI id must look like name@bank"]
        if errors:
            raise ValidationError(errors)

    def update_details(self, account_holder, brand_name=None, account_number=None, ifsc_code=None, upi_id=None):
        ifsc_code = ifsc_code.upper() if ifsc_code else ifsc_code
        self.validate_details(account_number, ifsc_code, upi_id)
        self.account_holder = account_holder
        self.brand_name = brand_name or self.brand_name
        self.account_number = account_number
        self.ifsc_code = ifsc_code
        self.upi_id = upi_id
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            PayoutAccountRegistered(
                brand_id=str(self.brand_id),
                mode=self.destination().mode,
                complete=not self.missing_details(),
                registered_at=now,
            )
        )

    def missing_details(self) -> list[str]:
        """Fields still needed before the brand can be paid."""
        if self.upi_id:
            return []
        return [name for name in ("account_number", "ifsc_code") if not getattr(self, name)]

    def destination(self) -> PayoutDestination:
        return PayoutDestination(
            account_holder=self.account_holder,
            account_number=self.account_number,
            ifsc_code=self.ifsc_code,
            upi_id=self.upi_id,
        )


def destination_issue(account) -> str | None:
    """The reason a brand cannot be paid because of its payout details, if any."""
    if account is None:
        return "Missing payout destination details"
    missing = account.missing_details()
    if missing:
        return f"Missing payout destination details: {', '.join(missing)}"
    return None

"""Payout destination registration — command and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from shared.queries import fetch_all

from payments.domain import payments
from payments.payout_account.account import PayoutAccount

logger = structlog.get_logger(__name__)


@payments.command(part_of="PayoutAccount")
class RegisterPayoutAccount:
    brand_id = Identifier(required=True)
    brand_name = String(max_length=255)
    account_holder = String(required=True, max_length=255)
    account_number = String(max_length=18)
    ifsc_code = String(max_length=11)
    upi_id = String(max_length=320)


@payments.command_handler(part_of=PayoutAccount)
class PayoutAccountHandler:
    @handle(RegisterPayoutAccount)
    def register(self, command):
        repo = current_domain.repository_for(PayoutAccount)
        try:
            account = repo.get(command.brand_id)
        except ObjectNotFoundError:
            account = PayoutAccount(brand_id=command.brand_id, account_holder=command.account_holder)

        account.update_details(
            account_holder=command.account_holder,
            brand_name=command.brand_name,
            account_number=command.account_number,
            ifsc_code=command.ifsc_code,
            upi_id=command.upi_id,
        )
        repo.add(account)

        logger.info(
            "Payout account registered",
            brand_id=str(command.brand_id),
            missing_details=account.missing_details(),
        )
        return str(account.brand_id)


def payout_account_for(brand_id):
    try:
        return current_domain.repository_for(PayoutAccount).get(str(brand_id))
    except ObjectNotFoundError:
        return None


def all_payout_accounts() -> dict:
    accounts = fetch_all(current_domain.repository_for(PayoutAccount)._dao.query)
    return {str(account.brand_id): account for account in accounts}

"""Read-side access to recorded payouts."""

from protean.utils.globals import current_domain
from shared.money import ZERO, to_decimal
from shared.queries import fetch_all

from payments.payout.payout import Payout


def find_payout_by_gateway_id(gateway_payment_id):
    matches = current_domain.repository_for(Payout)._dao.query.filter(gateway_payment_id=gateway_payment_id).all()
    return matches.items[0] if matches.items else None


def payouts_for_brand(brand_id):
    query = current_domain.repository_for(Payout)._dao.query.filter(brand_id=str(brand_id))
    return sorted(fetch_all(query), key=lambda p: p.recorded_at)


def completed_payments(brand_id):
    return sum((to_decimal(p.amount) for p in payouts_for_brand(brand_id)), ZERO)


def completed_payments_by_brand() -> dict:
    totals = {}
    for payout in fetch_all(current_domain.repository_for(Payout)._dao.query):
        brand = str(payout.brand_id)
        totals[brand] = totals.get(brand, ZERO) + to_decimal(payout.amount)
    return totals

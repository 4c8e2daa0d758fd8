"""Settlement parameters, read from the ``[custom]`` table of domain.toml."""

from dataclasses import dataclass
from decimal import Decimal

from protean.exceptions import ValidationError
from shared.money import to_decimal

MIN_COMMISSION_RATE = Decimal("0.15")
MAX_COMMISSION_RATE = Decimal("0.20")


@dataclass(frozen=True)
class SettlementPolicy:
    commission_rate: Decimal = Decimal("0.15")
    gateway_fee_rate: Decimal = Decimal("0.02")
    delivery_charge_per_order: Decimal = Decimal("100")
    hold_days: int = 7
    currency: str = "INR"

    def __post_init__(self):
        rate = to_decimal(self.commission_rate)
        if not MIN_COMMISSION_RATE <= rate <= MAX_COMMISSION_RATE:
            message = f"Commission rate must be between {MIN_COMMISSION_RATE} and {MAX_COMMISSION_RATE}"
            raise ValidationError({"commission_rate": [message]})
        if self.hold_days < 0:
            raise ValidationError({"hold_days": ["Hold period cannot be negative"]})
        # Normalise config floats/ints to exact decimals
        object.__setattr__(self, "commission_rate", rate)
        object.__setattr__(self, "gateway_fee_rate", to_decimal(self.gateway_fee_rate))
        object.__setattr__(self, "delivery_charge_per_order", to_decimal(self.delivery_charge_per_order))

    def with_commission(self, rate) -> "SettlementPolicy":
        return SettlementPolicy(
            commission_rate=to_decimal(rate),
            gateway_fee_rate=self.gateway_fee_rate,
            delivery_charge_per_order=self.delivery_charge_per_order,
            hold_days=self.hold_days,
            currency=self.currency,
        )

    @classmethod
    def from_config(cls, config=None) -> "SettlementPolicy":
        if config is None:
            from payments.domain import payments

            config = payments.config
        custom = config.get("custom") or {}
        return cls(
            commission_rate=to_decimal(custom.get("commission_rate", "0.15")),
            gateway_fee_rate=to_decimal(custom.get("gateway_fee_rate", "0.02")),
            delivery_charge_per_order=to_decimal(custom.get("delivery_charge_per_order", "100")),
            hold_days=int(custom.get("payout_hold_days", 7)),
            currency=custom.get("currency", "INR"),
        )

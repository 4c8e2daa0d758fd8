"""Order aggregate (CQRS) — the authoritative record every workflow mutates.

An order carries three independent status fields, each a closed enumeration:

    delivery_status   logistics progress along the fulfilment sequence
                      Pending → Accepted → Processing → Shipped →
                      Out for Delivery → Delivered, plus Cancellation
                      Requested and Cancelled
    lifecycle_status  the customer/brand-facing workflow state (pending,
                      cancel_requested, cancelled, refund_requested, ...)
    refund_status     how much of the captured payment went back
                      (not_initiated, initiated, completed)

Cancellation requests and executed refunds are child entities, so a whole
transition (order fields plus the request or refund record) is persisted in
one repository write and either commits fully or not at all.

Money is stored as floats but every sum and comparison is done in Decimal via
``shared.money``.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String
from shared.errors import AlreadyResolved, Conflict, DuplicateRefund, InvalidTransition, NotEligible
from shared.money import ZERO, quantize, to_decimal, to_float

from ordering.domain import ordering
from ordering.order.events import (
    CancellationRequested,
    CancellationResolved,
    DeliveryStatusChanged,
    OrderCancelled,
    OrderPlaced,
    OrderRefunded,
    PaymentCaptured,
    RefundRequested,
    RefundResponded,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DeliveryStatus(Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    CANCELLATION_REQUESTED = "Cancellation Requested"


class LifecycleStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCEL_REQUESTED = "cancel_requested"
    CANCELLED = "cancelled"
    CANCEL_REJECTED = "cancel_rejected"
    REFUND_REQUESTED = "refund_requested"
    REFUND_APPROVED = "refund_approved"
    REFUNDED = "refunded"
    REFUND_REJECTED = "refund_rejected"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"


class RefundStatus(Enum):
    NOT_INITIATED = "not_initiated"
    INITIATED = "initiated"
    COMPLETED = "completed"


class RequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ResolutionAction(Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RefundInitiator(Enum):
    PLATFORM = "platform"
    BRAND = "brand"


class CancellationReason(Enum):
    CHANGE_VARIANT = "Want to change the item/variant"
    NOT_REQUIRED = "Product is not required anymore"
    PLACED_BY_MISTAKE = "Order placed by mistake"
    CHEAPER_ELSEWHERE = "Found cheaper price elsewhere"
    DELIVERY_TOO_LONG = "Expected delivery time is too long"
    PAYMENT_ISSUES = "Payment issues/Changed payment method"
    OTHER = "Other"


class RefundReason(Enum):
    DAMAGED = "Product received is damaged/defective"
    WRONG_PRODUCT = "Wrong product delivered"
    NOT_AS_DESCRIBED = "Product doesn't match description"
    SIZE_FIT = "Size/fit issues"
    QUALITY = "Quality not as expected"
    CHANGED_MIND = "Changed my mind"
    DELAYED = "Delayed Order Refund"
    OTHER = "Other"


# Forward-only fulfilment sequence; skipping ahead is allowed, going back is not
FULFILMENT_SEQUENCE = [
    DeliveryStatus.PENDING,
    DeliveryStatus.ACCEPTED,
    DeliveryStatus.PROCESSING,
    DeliveryStatus.SHIPPED,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
]

# Once the parcel has left, the order can no longer be cancelled
_NOT_CANCELLABLE = {
    DeliveryStatus.SHIPPED,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
    DeliveryStatus.CANCELLED,
}

_OPEN_REFUND_STATES = {
    LifecycleStatus.REFUND_REQUESTED,
    LifecycleStatus.REFUND_APPROVED,
    LifecycleStatus.REFUNDED,
}

_RESOLVED_REFUND_STATES = {
    LifecycleStatus.REFUND_APPROVED,
    LifecycleStatus.REFUND_REJECTED,
    LifecycleStatus.REFUNDED,
}

# Lifecycle states that carry an obligation to return the whole captured amount
_FULL_REFUND_STATES = {
    LifecycleStatus.REFUND_APPROVED,
    LifecycleStatus.CANCELLED,
    LifecycleStatus.REFUNDED,
}


def _aware(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _validate_reason(reason_enum, reason, details, field="reason"):
    try:
        code = reason_enum(reason)
    except ValueError:
        allowed = ", ".join(r.value for r in reason_enum)
        raise ValidationError({field: [f"Unknown reason '{reason}'. Expected one of: {allowed}"]}) from None
    if code == reason_enum.OTHER and not (details or "").strip():
        raise ValidationError({"details": ["Please describe the reason when choosing 'Other'"]})
    return code


@dataclass(frozen=True)
class RefundPlan:
    """What the next gateway refund for an order should look like."""

    amount: Decimal
    balance: Decimal
    idempotency_key: str
    closes_order: bool


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A product line. ``line_index`` is the stable position used to target a line."""

    line_index = Integer(required=True, min_value=0)
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    size = String(max_length=20)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    cancelled = Boolean(default=False)

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.unit_price) * self.quantity


@ordering.entity(part_of="Order")
class CancellationRequest:
    """A customer's request to cancel the whole order or a single line.

    Remembers the delivery and lifecycle status in force before the first open
    request so a rejection can put the order back exactly where it was.
    """

    line_index = Integer()  # None targets the whole order
    reason = String(required=True, max_length=100)
    details = String(max_length=500)
    status = String(choices=RequestStatus, default=RequestStatus.PENDING.value)
    requested_by = String(max_length=100)
    requested_at = DateTime(required=True)
    processed_at = DateTime()
    processed_by = String(max_length=100)
    admin_notes = String(max_length=500)
    previous_delivery_status = String(choices=DeliveryStatus, required=True)
    previous_lifecycle_status = String(choices=LifecycleStatus, required=True)

    @property
    def is_open(self) -> bool:
        return self.status == RequestStatus.PENDING.value

    @property
    def is_whole_order(self) -> bool:
        return self.line_index is None


@ordering.entity(part_of="Order")
class RefundRecord:
    """An executed gateway refund. Never modified once recorded."""

    amount = Float(required=True, min_value=0.0)
    gateway_refund_id = String(required=True, max_length=255)
    idempotency_key = String(required=True, max_length=255)
    initiated_by = String(choices=RefundInitiator, default=RefundInitiator.PLATFORM.value)
    notes = String(max_length=500)
    refunded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    items = HasMany(OrderItem)
    cancellation_requests = HasMany(CancellationRequest)
    refunds = HasMany(RefundRecord)
    delivery_status = String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    lifecycle_status = String(choices=LifecycleStatus, default=LifecycleStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    gateway_payment_id = String(max_length=255)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    refund_status = String(choices=RefundStatus, default=RefundStatus.NOT_INITIATED.value)
    refunded_amount = Float(default=0.0)
    refund_reason = String(max_length=100)
    refund_details = String(max_length=500)
    refund_notes = String(max_length=500)
    refund_requested_at = DateTime()
    estimated_delivery = DateTime()
    delivered_at = DateTime()
    cancelled_by = String(max_length=100)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def refunded_amount_never_exceeds_total(self):
        if to_decimal(self.refunded_amount) > to_decimal(self.total_amount):
            raise ValidationError({"refunded_amount": ["Refunded amount cannot exceed the order total"]})

    @invariant.post
    def completed_refund_must_have_refunded_money(self):
        if self.refund_status == RefundStatus.COMPLETED.value and to_decimal(self.refunded_amount) <= ZERO:
            raise ValidationError({"refund_status": ["A completed refund must have a refunded amount"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id,
        brand_id,
        items_data,
        total_amount=None,
        estimated_delivery=None,
        currency="INR",
    ):
        """Place a new order.

        Args:
            customer_id: The purchasing customer.
            brand_id: The brand that fulfils the order.
            items_data: List of dicts with product_id, name, size, quantity, unit_price.
            total_amount: Amount charged for the order. Defaults to the sum of the lines.
            estimated_delivery: Promised delivery datetime, used for the delay check.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one product"]})

        items = [
            OrderItem(
                line_index=index,
                product_id=item["product_id"],
                name=item["name"],
                size=item.get("size"),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
            )
            for index, item in enumerate(items_data)
        ]
        if total_amount is None:
            total_amount = to_float(sum((item.line_total for item in items), ZERO))
        if to_decimal(total_amount) <= ZERO:
            raise ValidationError({"total_amount": ["Order total must be positive"]})

        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            brand_id=brand_id,
            items=items,
            total_amount=to_float(total_amount),
            currency=currency,
            estimated_delivery=estimated_delivery,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                brand_id=str(brand_id),
                items=json.dumps(items_data),
                total_amount=order.total_amount,
                currency=currency,
                estimated_delivery=estimated_delivery,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Concurrency
    # -------------------------------------------------------------------
    def check_revision(self, expected_revision):
        """Compare-and-swap guard: fail if the caller acted on a stale copy."""
        if expected_revision is not None and int(expected_revision) != self.revision:
            raise Conflict(
                {
                    "revision": [
                        f"Order {self.id} is at revision {self.revision}, "
                        f"but the command expected revision {expected_revision}"
                    ]
                }
            )

    def _touch(self, now):
        self.revision = (self.revision or 0) + 1
        self.updated_at = now

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def open_requests(self):
        return [r for r in self.cancellation_requests if r.is_open]

    @property
    def cancelled_lines_value(self) -> Decimal:
        value = sum((item.line_total for item in self.items if item.cancelled), ZERO)
        return min(value, to_decimal(self.total_amount))

    @property
    def refundable_remaining(self) -> Decimal:
        return max(to_decimal(self.total_amount) - to_decimal(self.refunded_amount), ZERO)

    def is_delayed(self, now=None) -> bool:
        """Delivered after the promised date, or still undelivered past it."""
        estimated = _aware(self.estimated_delivery)
        if estimated is None:
            return False
        delivered = _aware(self.delivered_at)
        if delivered is not None:
            return delivered > estimated
        return _aware(now or datetime.now(UTC)) > estimated

    def refund_prompt_eligible(self, now=None) -> bool:
        """Whether the customer should be proactively offered a refund."""
        return (
            self.delivery_status == DeliveryStatus.DELIVERED.value
            and LifecycleStatus(self.lifecycle_status) not in _OPEN_REFUND_STATES
            and self.is_delayed(now)
        )

    def _item_at(self, line_index):
        item = next((i for i in self.items if i.line_index == line_index), None)
        if item is None:
            raise ValidationError({"product_index": [f"Order has no product at index {line_index}"]})
        return item

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment(self, gateway_payment_id):
        """Mark the order paid. Returns False when the same payment was already recorded."""
        if self.payment_status == PaymentStatus.PAID.value:
            if self.gateway_payment_id == gateway_payment_id:
                return False
            raise InvalidTransition(
                {"payment_status": [f"Order is already paid with payment {self.gateway_payment_id}"]}
            )

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.gateway_payment_id = gateway_payment_id
        self._touch(now)
        self.raise_(
            PaymentCaptured(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                gateway_payment_id=gateway_payment_id,
                amount=self.total_amount,
                captured_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Delivery status
    # -------------------------------------------------------------------
    def update_delivery_status(self, new_status, changed_by=None):
        """Move the order along the fulfilment sequence.

        Re-applying the current status is a no-op and returns False. Cancelling
        outright is allowed until the order ships; entering or leaving
        Cancellation Requested is reserved for the cancellation workflow.
        """
        current = DeliveryStatus(self.delivery_status)
        try:
            target = DeliveryStatus(new_status)
        except ValueError:
            allowed = ", ".join(s.value for s in DeliveryStatus)
            raise ValidationError(
                {"delivery_status": [f"Unknown status '{new_status}'. Expected one of: {allowed}"]}
            ) from None

        if target == current:
            return False
        if current == DeliveryStatus.CANCELLED:
            raise InvalidTransition({"delivery_status": ["Cancelled orders cannot change delivery status"]})
        if target == DeliveryStatus.CANCELLATION_REQUESTED:
            raise InvalidTransition(
                {"delivery_status": ["Cancellation Requested is set only by a customer's cancellation request"]}
            )
        if target == DeliveryStatus.CANCELLED:
            if current in _NOT_CANCELLABLE:
                raise InvalidTransition(
                    {"delivery_status": [f"Cannot cancel an order that is already {current.value}"]}
                )
            self._cancel_outright(changed_by)
            return True
        if current == DeliveryStatus.CANCELLATION_REQUESTED:
            raise InvalidTransition(
                {"delivery_status": ["Resolve the pending cancellation request before updating delivery status"]}
            )
        if FULFILMENT_SEQUENCE.index(target) < FULFILMENT_SEQUENCE.index(current):
            raise InvalidTransition(
                {"delivery_status": [f"Cannot move delivery status back from {current.value} to {target.value}"]}
            )

        now = datetime.now(UTC)
        self.delivery_status = target.value
        if target == DeliveryStatus.DELIVERED:
            self.delivered_at = now
            if self.lifecycle_status in (LifecycleStatus.PENDING.value, LifecycleStatus.CANCEL_REJECTED.value):
                self.lifecycle_status = LifecycleStatus.COMPLETED.value
        self._touch(now)
        self.raise_(
            DeliveryStatusChanged(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                previous_status=current.value,
                new_status=target.value,
                lifecycle_status=self.lifecycle_status,
                changed_by=changed_by,
                changed_at=now,
            )
        )
        return True

    def _cancel_outright(self, cancelled_by):
        now = datetime.now(UTC)
        for request in self.open_requests:
            self._close_request(request, RequestStatus.APPROVED, cancelled_by, "Order cancelled", now)
        self._mark_cancelled(cancelled_by, "Cancelled by brand", now)
        self._touch(now)

    def _mark_cancelled(self, cancelled_by, reason, now):
        self.delivery_status = DeliveryStatus.CANCELLED.value
        self.lifecycle_status = LifecycleStatus.CANCELLED.value
        self.cancelled_by = cancelled_by
        self._reset_refund_obligation()
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                cancelled_by=cancelled_by,
                reason=reason,
                total_amount=self.total_amount,
                payment_status=self.payment_status,
                cancelled_at=now,
            )
        )

    def _reset_refund_obligation(self):
        if self.refund_status != RefundStatus.COMPLETED.value:
            self.refund_status = RefundStatus.NOT_INITIATED.value

    # -------------------------------------------------------------------
    # Cancellation workflow
    # -------------------------------------------------------------------
    def request_cancellation(self, reason, line_index=None, details=None, requested_by=None):
        """Open a cancellation request for the whole order or a single line."""
        current = DeliveryStatus(self.delivery_status)
        if current in _NOT_CANCELLABLE:
            raise NotEligible({"delivery_status": [f"Orders that are {current.value} can no longer be cancelled"]})

        _validate_reason(CancellationReason, reason, details)

        item = None
        if line_index is not None:
            item = self._item_at(line_index)
            if item.cancelled:
                raise NotEligible({"product_index": [f"Product at index {line_index} is already cancelled"]})

        for request in self.open_requests:
            if request.is_whole_order or line_index is None or request.line_index == line_index:
                raise NotEligible(
                    {"cancellation": ["An open cancellation request already exists for this order or product"]}
                )

        # Concurrent requests share the status in force before the first one
        open_requests = self.open_requests
        if open_requests:
            earliest = min(open_requests, key=lambda r: _aware(r.requested_at))
            previous_delivery = earliest.previous_delivery_status
            previous_lifecycle = earliest.previous_lifecycle_status
        else:
            previous_delivery = self.delivery_status
            previous_lifecycle = self.lifecycle_status

        now = datetime.now(UTC)
        request = CancellationRequest(
            line_index=line_index,
            reason=reason,
            details=details,
            requested_by=requested_by,
            requested_at=now,
            previous_delivery_status=previous_delivery,
            previous_lifecycle_status=previous_lifecycle,
        )
        self.add_cancellation_requests(request)
        self.delivery_status = DeliveryStatus.CANCELLATION_REQUESTED.value
        self.lifecycle_status = LifecycleStatus.CANCEL_REQUESTED.value
        self._touch(now)

        self.raise_(
            CancellationRequested(
                order_id=str(self.id),
                request_id=str(request.id),
                brand_id=str(self.brand_id),
                customer_id=str(self.customer_id),
                line_index=line_index,
                product_name=item.name if item else None,
                quantity=item.quantity if item else None,
                size=item.size if item else None,
                unit_price=item.unit_price if item else None,
                order_total=self.total_amount,
                reason=reason,
                details=details,
                requested_by=requested_by,
                previous_delivery_status=previous_delivery,
                requested_at=now,
            )
        )
        return request

    def find_cancellation_request(self, request_id=None, line_index=None):
        """Locate a request by id, or the most recent one targeting ``line_index``."""
        if request_id is not None:
            request = next((r for r in self.cancellation_requests if str(r.id) == str(request_id)), None)
        else:
            candidates = [r for r in self.cancellation_requests if r.line_index == line_index]
            request = max(candidates, key=lambda r: _aware(r.requested_at)) if candidates else None
        if request is None:
            raise NotEligible({"cancellation": ["No cancellation request found for this order or product"]})
        return request

    def resolve_cancellation(self, action, request_id=None, line_index=None, notes=None, processed_by=None):
        """Approve or reject a cancellation request. Each request resolves exactly once."""
        try:
            action = ResolutionAction(action)
        except ValueError:
            raise ValidationError({"action": [f"Unknown action '{action}'. Use 'approve' or 'reject'"]}) from None

        request = self.find_cancellation_request(request_id=request_id, line_index=line_index)
        if not request.is_open:
            raise AlreadyResolved({"cancellation": [f"Cancellation request was already {request.status}"]})

        now = datetime.now(UTC)
        if action == ResolutionAction.APPROVE:
            self._close_request(request, RequestStatus.APPROVED, processed_by, notes, now, emit=False)
            self._apply_approval(request, processed_by, now)
        else:
            self._close_request(request, RequestStatus.REJECTED, processed_by, notes, now, emit=False)
            if not self.open_requests:
                self.delivery_status = request.previous_delivery_status
                self.lifecycle_status = LifecycleStatus.CANCEL_REJECTED.value
        self._touch(now)

        self.raise_(
            CancellationResolved(
                order_id=str(self.id),
                request_id=str(request.id),
                brand_id=str(self.brand_id),
                line_index=request.line_index,
                status=request.status,
                processed_by=processed_by,
                admin_notes=notes,
                delivery_status=self.delivery_status,
                lifecycle_status=self.lifecycle_status,
                processed_at=now,
            )
        )
        return request

    def _apply_approval(self, request, processed_by, now):
        if not request.is_whole_order:
            self._item_at(request.line_index).cancelled = True

        if request.is_whole_order or all(item.cancelled for item in self.items):
            self._mark_cancelled(processed_by, request.reason, now)
            return

        self._reset_refund_obligation()
        if not self.open_requests:
            self.delivery_status = request.previous_delivery_status
            self.lifecycle_status = request.previous_lifecycle_status

    def _close_request(self, request, status, processed_by, notes, now, emit=True):
        request.status = status.value
        request.processed_by = processed_by
        request.processed_at = now
        request.admin_notes = notes
        if emit:
            self.raise_(
                CancellationResolved(
                    order_id=str(self.id),
                    request_id=str(request.id),
                    brand_id=str(self.brand_id),
                    line_index=request.line_index,
                    status=status.value,
                    processed_by=processed_by,
                    admin_notes=notes,
                    delivery_status=DeliveryStatus.CANCELLED.value,
                    lifecycle_status=LifecycleStatus.CANCELLED.value,
                    processed_at=now,
                )
            )

    # -------------------------------------------------------------------
    # Refund workflow
    # -------------------------------------------------------------------
    def request_refund(self, reason=None, details=None):
        """Open a refund request on a delivered order."""
        if self.delivery_status != DeliveryStatus.DELIVERED.value:
            raise NotEligible({"delivery_status": ["Refunds can only be requested for delivered orders"]})
        lifecycle = LifecycleStatus(self.lifecycle_status)
        if lifecycle in _OPEN_REFUND_STATES:
            raise NotEligible({"lifecycle_status": [f"A refund is already {lifecycle.value.replace('_', ' ')}"]})

        reason = reason or RefundReason.DELAYED.value
        _validate_reason(RefundReason, reason, details)

        now = datetime.now(UTC)
        self.lifecycle_status = LifecycleStatus.REFUND_REQUESTED.value
        self.refund_reason = reason
        self.refund_details = details
        self.refund_notes = None
        self.refund_requested_at = now
        self._touch(now)
        self.raise_(
            RefundRequested(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                customer_id=str(self.customer_id),
                reason=reason,
                details=details,
                delayed=self.is_delayed(now),
                requested_at=now,
            )
        )

    def respond_to_refund(self, action, notes=None, responded_by=None):
        try:
            action = ResolutionAction(action)
        except ValueError:
            raise ValidationError({"action": [f"Unknown action '{action}'. Use 'approve' or 'reject'"]}) from None

        lifecycle = LifecycleStatus(self.lifecycle_status)
        if lifecycle in _RESOLVED_REFUND_STATES:
            raise AlreadyResolved({"refund": [f"Refund request was already resolved ({lifecycle.value})"]})
        if lifecycle != LifecycleStatus.REFUND_REQUESTED:
            raise InvalidTransition({"refund": ["There is no open refund request for this order"]})

        decision = (
            LifecycleStatus.REFUND_APPROVED if action == ResolutionAction.APPROVE else LifecycleStatus.REFUND_REJECTED
        )
        now = datetime.now(UTC)
        self.lifecycle_status = decision.value
        self.refund_notes = notes
        self._touch(now)
        self.raise_(
            RefundResponded(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                decision=decision.value,
                notes=notes,
                responded_by=responded_by,
                responded_at=now,
            )
        )

    def refund_ceiling(self) -> tuple[Decimal, bool]:
        """How much of the captured payment is owed back, and whether that closes the order.

        Approved refunds and cancelled orders owe the whole total. Orders with
        individually cancelled lines owe the value of those lines.
        """
        if self.payment_status != PaymentStatus.PAID.value or not self.gateway_payment_id:
            raise NotEligible({"payment_status": ["Order has no captured payment to refund"]})
        if self.refund_status == RefundStatus.COMPLETED.value:
            raise NotEligible({"refund_status": ["Order has already been fully refunded"]})

        lifecycle = LifecycleStatus(self.lifecycle_status)
        if lifecycle in _FULL_REFUND_STATES:
            return to_decimal(self.total_amount), True
        if any(item.cancelled for item in self.items):
            return self.cancelled_lines_value, False
        if lifecycle == LifecycleStatus.REFUND_REQUESTED:
            raise NotEligible({"lifecycle_status": ["Refund request has not been approved yet"]})
        raise NotEligible({"lifecycle_status": ["Order has no approved refund or cancellation to refund"]})

    def plan_refund(self, amount=None) -> RefundPlan:
        """Validate the requested amount and derive the gateway idempotency key.

        The key depends only on how many refunds are already recorded, so a
        retried command that never committed reuses the same key.
        """
        ceiling, closes_order = self.refund_ceiling()
        balance = quantize(max(ceiling - to_decimal(self.refunded_amount), ZERO))
        if balance <= ZERO:
            raise NotEligible({"amount": ["Nothing left to refund on this order"]})

        amount = balance if amount is None else quantize(amount)
        if amount <= ZERO:
            raise NotEligible({"amount": ["Refund amount must be positive"]})
        if amount > balance:
            raise NotEligible({"amount": [f"Refund amount {amount} exceeds the refundable balance {balance}"]})

        return RefundPlan(
            amount=amount,
            balance=balance,
            idempotency_key=f"rfnd_{self.id}_{len(self.refunds) + 1}",
            closes_order=closes_order,
        )

    def record_refund(
        self,
        amount,
        gateway_refund_id,
        idempotency_key,
        initiated_by=None,
        notes=None,
        closes_order=True,
    ):
        """Apply a gateway-confirmed refund. Returns False if it was already recorded."""
        amount = quantize(amount)
        existing = next((r for r in self.refunds if r.gateway_refund_id == gateway_refund_id), None)
        if existing is not None:
            if quantize(existing.amount) == amount:
                return False
            raise DuplicateRefund(
                {"gateway_refund_id": [f"Refund {gateway_refund_id} was already recorded for {existing.amount}"]}
            )

        new_total = to_decimal(self.refunded_amount) + amount
        if new_total > to_decimal(self.total_amount):
            raise NotEligible({"amount": ["Refund would exceed the order total"]})

        now = datetime.now(UTC)
        initiated_by = initiated_by or RefundInitiator.PLATFORM.value
        self.add_refunds(
            RefundRecord(
                amount=to_float(amount),
                gateway_refund_id=gateway_refund_id,
                idempotency_key=idempotency_key,
                initiated_by=initiated_by,
                notes=notes,
                refunded_at=now,
            )
        )
        # Amount first so the completed-refund invariant always sees money refunded
        self.refunded_amount = to_float(new_total)
        if new_total >= to_decimal(self.total_amount):
            self.refund_status = RefundStatus.COMPLETED.value
        else:
            self.refund_status = RefundStatus.INITIATED.value
        if closes_order:
            self.lifecycle_status = LifecycleStatus.REFUNDED.value
        self._touch(now)

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                brand_id=str(self.brand_id),
                amount=to_float(amount),
                refunded_amount=self.refunded_amount,
                refund_status=self.refund_status,
                lifecycle_status=self.lifecycle_status,
                gateway_refund_id=gateway_refund_id,
                idempotency_key=idempotency_key,
                initiated_by=initiated_by,
                refunded_at=now,
            )
        )
        return True

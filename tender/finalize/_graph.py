"""
Finalization graph — gateway event routing as nodnod nodes.

Architecture:
    FinalizeSpec (injected)
         │
         ▼
    SpecNode ──────────────────────────────┐
         │                                 │
         ▼                                 ▼
    ActionableEventNode               IgnoredEventNode ──────────┐
         │                                                       │
         ▼                                                       │
    FetchPaymentNode                                             │
         │                                                       │
         ├── StoreErrorNode ─────────────────────────────────────┤
         ├── ExistingPaymentNode (event cannot change it) ───────┤
         ├── PendingFailureNode (pending + failure event) ───────┤
         └── NoPaymentNode ──────────────────────────────────────┤
                  │                                              │
                  └── IntentLookupNode (success events)          ├── FinalizeRouting (@polymorphic)
                           │                                     │            │
                           ├── VerifiedIntentNode ───────────────┤            ▼
                           └──────────────────────────────────────┘     FinalResultNode

The payment row is the only "already processed" signal. Every case checks
its preconditions (raising NodeError) before its first write, so exactly
one case runs per event.

Note: no 'from __future__ import annotations' here: nodnod resolves
dependencies from runtime type hints.
"""

from dataclasses import dataclass
from typing import Any

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error

from tender import graph as G
from tender.cart import Cart
from tender.checkout import (
    CheckoutConfig,
    CheckoutError,
    CheckoutErrorKind,
    IntentStatus,
    PaymentIntent,
    PaymentIntentManager,
)
from tender.finalize._db import PaymentStatus
from tender.finalize._ledger import PaymentLedger
from tender.finalize._types import (
    EventKind,
    FinalizeError,
    FinalizeErrorKind,
    FinalizeErrors,
    FinalizeOutcome,
    FinalizeStatus,
    GatewayEvent,
    Materialized,
    Order,
    Payment,
)
from tender._types import StoreError
from tender.logs import get_logger, purchase_prefix

log = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Input — FinalizeSpec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FinalizeSpec:
    """Everything one event needs to be finalized."""

    event: GatewayEvent
    ledger: PaymentLedger
    intents: PaymentIntentManager
    config: CheckoutConfig

    @property
    def prefix(self) -> str:
        return purchase_prefix(self.event.purchase_id)

    @property
    def reason(self) -> str:
        return self.event.reason or self.event.event_type


# ═══════════════════════════════════════════════════════════════════════════════
# Entry Nodes
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    """Wraps FinalizeSpec for graph."""

    def __init__(self, spec: FinalizeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: FinalizeSpec) -> "SpecNode":
        return cls(spec)


@G.node
class IgnoredEventNode:
    """Validates: event type carries no payment outcome."""

    def __init__(self, spec: FinalizeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec_node: SpecNode) -> "IgnoredEventNode":
        if spec_node.spec.event.kind is not EventKind.IGNORED:
            raise NodeError("Actionable event")
        return cls(spec_node.spec)


@G.node
class ActionableEventNode:
    """Validates: success or failure event."""

    def __init__(self, spec: FinalizeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec_node: SpecNode) -> "ActionableEventNode":
        if spec_node.spec.event.kind is EventKind.IGNORED:
            raise NodeError("Ignored event")
        return cls(spec_node.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Fetch Payment — the idempotency guard
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FetchPaymentNode:
    """Looks up the payment row for the event's purchase id."""

    def __init__(
        self,
        existing: Materialized | None,
        spec: FinalizeSpec,
        store_error: StoreError | None = None,
    ) -> None:
        self.existing = existing
        self.spec = spec
        self.store_error = store_error

    @classmethod
    async def __compose__(cls, event: ActionableEventNode) -> "FetchPaymentNode":
        spec = event.spec
        result = await spec.ledger.find_payment(spec.event.purchase_id)

        match result:
            case Ok(existing):
                return cls(existing, spec)
            case Error(err):
                return cls(None, spec, store_error=err)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — Each validates one ledger state
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class StoreErrorNode:
    """Validates: ledger lookup failed."""

    def __init__(self, error: StoreError, spec: FinalizeSpec) -> None:
        self.error = error
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchPaymentNode) -> "StoreErrorNode":
        if fetch.store_error is None:
            raise NodeError("No store error")
        return cls(fetch.store_error, fetch.spec)


def _fails_pending(existing: Materialized, event: GatewayEvent) -> bool:
    return existing.payment.status == PaymentStatus.PENDING and event.kind is EventKind.FAILED


@G.node
class ExistingPaymentNode:
    """Validates: payment exists and the event cannot change it."""

    def __init__(self, existing: Materialized, spec: FinalizeSpec) -> None:
        self.existing = existing
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchPaymentNode) -> "ExistingPaymentNode":
        existing = fetch.existing
        if existing is None:
            raise NodeError("No payment")
        if _fails_pending(existing, fetch.spec.event):
            raise NodeError("Pending payment failed")
        return cls(existing, fetch.spec)


@G.node
class PendingFailureNode:
    """Validates: payment is pending and the event reports a failure."""

    def __init__(self, existing: Materialized, spec: FinalizeSpec) -> None:
        self.existing = existing
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchPaymentNode) -> "PendingFailureNode":
        existing = fetch.existing
        if existing is None:
            raise NodeError("No payment")
        if not _fails_pending(existing, fetch.spec.event):
            raise NodeError("Nothing to fail")
        return cls(existing, fetch.spec)


@G.node
class NoPaymentNode:
    """Validates: lookup succeeded and found nothing."""

    def __init__(self, spec: FinalizeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchPaymentNode) -> "NoPaymentNode":
        if fetch.store_error is not None:
            raise NodeError("Store error")
        if fetch.existing is not None:
            raise NodeError("Payment exists")
        return cls(fetch.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Intent Nodes — success path only
# ═══════════════════════════════════════════════════════════════════════════════


def _amount_matches(event: GatewayEvent, intent: PaymentIntent) -> bool:
    if event.amount is None:
        return True
    if event.currency and event.currency.upper() != intent.amount.currency:
        return False
    return event.amount == intent.amount.amount


@G.node
class IntentLookupNode:
    """Locates the cart + frozen intent for a success event with no payment yet."""

    def __init__(
        self,
        spec: FinalizeSpec,
        cart: Cart | None,
        intent: PaymentIntent | None,
        error: CheckoutError | None = None,
    ) -> None:
        self.spec = spec
        self.cart = cart
        self.intent = intent
        self.error = error

    @classmethod
    async def __compose__(cls, none: NoPaymentNode) -> "IntentLookupNode":
        spec = none.spec
        if spec.event.kind is not EventKind.SUCCEEDED:
            raise NodeError("Not a success event")

        located = await spec.intents.locate(spec.event.purchase_id, spec.event.reference)
        match located:
            case Ok((cart, intent)):
                return cls(spec, cart, intent)
            case Error(err):
                return cls(spec, None, None, error=err)


@G.node
class VerifiedIntentNode:
    """Validates: intent found and the gateway charged its snapshot total."""

    def __init__(self, spec: FinalizeSpec, cart: Cart, intent: PaymentIntent) -> None:
        self.spec = spec
        self.cart = cart
        self.intent = intent

    @classmethod
    def __compose__(cls, lookup: IntentLookupNode) -> "VerifiedIntentNode":
        if lookup.error is not None or lookup.cart is None or lookup.intent is None:
            raise NodeError("Intent unavailable")
        if not _amount_matches(lookup.spec.event, lookup.intent):
            raise NodeError("Amount mismatch")
        return cls(lookup.spec, lookup.cart, lookup.intent)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeOk:
    status: FinalizeStatus
    payment: Payment | None = None
    order: Order | None = None
    message: str = ""


@dataclass(frozen=True)
class OutcomeError:
    kind: FinalizeErrorKind
    message: str
    cause: Any | None = None


type Outcome = OutcomeOk | OutcomeError


def _store_failure(err: StoreError) -> OutcomeError:
    return OutcomeError(FinalizeErrorKind.STORE_ERROR, err.message, err.cause)


async def _transition_intent(
    spec: FinalizeSpec, status: IntentStatus, reason: str | None, *, clear_cart: bool
) -> None:
    """
    Move the purchase's intent to `status` after the ledger write.

    The ledger row is already committed and is the record of truth, so a
    failure here is logged, not returned.
    """
    located = await spec.intents.locate(spec.event.purchase_id, spec.event.reference)
    match located:
        case Ok((cart, intent)):
            if intent.status is status:
                return
            marked = await spec.intents.mark(
                cart, status, reason, purchase_id=intent.purchase_id, clear_cart=clear_cart
            )
            match marked:
                case Error(mark_err):
                    log.error(f"{spec.prefix} Intent not moved to {status}: {mark_err.message}")
        case Error(err):
            log.warning(f"{spec.prefix} Intent not moved to {status}: {err.message}")


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome — Each case uses validated state nodes
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class FinalizeRouting:
    """Polymorphic router — each @case depends on a validated state node."""

    @case
    def ignored(cls, node: IgnoredEventNode) -> Outcome:
        """IGNORED — event type without payment outcome."""
        log.info(f"{node.spec.prefix} Ignoring {node.spec.event.event_type}")
        return OutcomeOk(FinalizeStatus.IGNORED, message=f"Ignored {node.spec.event.event_type}")

    @case
    def store_error(cls, node: StoreErrorNode) -> Outcome:
        """STORE_ERROR — ledger lookup failed."""
        return _store_failure(node.error)

    @case
    async def duplicate(cls, node: ExistingPaymentNode) -> Outcome:
        """
        Payment already recorded: return it unchanged.

        A paid payment whose intent never reached `succeeded` (the cart
        close after materialize failed) is settled here, so redelivery
        repairs the cart.
        """
        existing = node.existing
        log.info(f"{node.spec.prefix} Duplicate delivery, payment {existing.payment.status}")
        if existing.payment.status == PaymentStatus.PAID:
            await _transition_intent(node.spec, IntentStatus.SUCCEEDED, None, clear_cart=True)
        return OutcomeOk(
            FinalizeStatus.DUPLICATE,
            payment=existing.payment,
            order=existing.order,
            message="Already processed",
        )

    @case
    async def fail_pending(cls, node: PendingFailureNode) -> Outcome:
        """Failure event for a pending payment: pending → failed, with reason."""
        spec = node.spec
        failed = await spec.ledger.mark_failed(spec.event.purchase_id, spec.reason)
        match failed:
            case Error(err):
                return _store_failure(err)
            case Ok(None):
                return OutcomeOk(
                    FinalizeStatus.DUPLICATE,
                    payment=node.existing.payment,
                    order=node.existing.order,
                    message="Already processed",
                )
            case Ok(m):
                log.info(f"{spec.prefix} Pending payment failed: {spec.reason}")
                await _transition_intent(spec, IntentStatus.FAILED, spec.reason, clear_cart=False)
                return OutcomeOk(FinalizeStatus.FAILED, payment=m.payment, order=m.order)

    @case
    def intent_unavailable(cls, node: IntentLookupNode) -> Outcome:
        """Success event, no payment, and no intent to build the order from."""
        err = node.error
        if err is None:
            raise NodeError("Intent found")
        if err.kind is CheckoutErrorKind.NOT_FOUND:
            missing = FinalizeErrors.intent_not_found(node.spec.event.purchase_id)
            log.warning(f"{node.spec.prefix} {missing.message}")
            return OutcomeError(missing.kind, missing.message)
        return OutcomeError(FinalizeErrorKind.STORE_ERROR, err.message, err.cause)

    @case
    def amount_mismatch(cls, node: IntentLookupNode) -> Outcome:
        """Gateway charged something other than the frozen total."""
        if node.error is not None or node.intent is None:
            raise NodeError("Intent unavailable")
        if _amount_matches(node.spec.event, node.intent):
            raise NodeError("Amount matches")
        event = node.spec.event
        mismatch = FinalizeErrors.amount_mismatch(
            event.purchase_id, node.intent.amount, event.amount or 0, event.currency
        )
        return OutcomeError(mismatch.kind, mismatch.message)

    @case
    async def materialize(cls, node: VerifiedIntentNode) -> Outcome:
        """Create order + payment from the frozen snapshot, then close the cart."""
        spec = node.spec
        result = await spec.ledger.materialize(
            node.intent,
            spec.event,
            spec.config.payment_method,
            cart_reference=str(node.cart.key),
        )
        match result:
            case Error(err):
                return _store_failure(err)
            case Ok(m) if not m.created:
                return OutcomeOk(
                    FinalizeStatus.DUPLICATE,
                    payment=m.payment,
                    order=m.order,
                    message="Already processed",
                )
            case Ok(m):
                marked = await spec.intents.mark(
                    node.cart,
                    IntentStatus.SUCCEEDED,
                    purchase_id=node.intent.purchase_id,
                    clear_cart=True,
                )
                match marked:
                    case Error(mark_err):
                        log.error(f"{spec.prefix} Order created but cart not closed: {mark_err.message}")
                return OutcomeOk(FinalizeStatus.CREATED, payment=m.payment, order=m.order)

    @case
    async def fail_new(cls, node: NoPaymentNode) -> Outcome:
        """Failure event with no payment row: fail the intent only."""
        spec = node.spec
        if spec.event.kind is not EventKind.FAILED:
            raise NodeError("Not a failure event")

        located = await spec.intents.locate(spec.event.purchase_id, spec.event.reference)
        match located:
            case Error(err) if err.kind is CheckoutErrorKind.NOT_FOUND:
                log.warning(f"{spec.prefix} Failure for unknown purchase: {spec.reason}")
                return OutcomeOk(FinalizeStatus.IGNORED, message="Unknown purchase")
            case Error(err):
                return OutcomeError(FinalizeErrorKind.STORE_ERROR, err.message, err.cause)
            case Ok((cart, intent)):
                if intent.status.is_terminal:
                    return OutcomeOk(FinalizeStatus.DUPLICATE, message=f"Intent already {intent.status}")
                marked = await spec.intents.mark(
                    cart, IntentStatus.FAILED, spec.reason, purchase_id=intent.purchase_id
                )
                match marked:
                    case Error(err):
                        return OutcomeError(FinalizeErrorKind.STORE_ERROR, err.message, err.cause)
                    case Ok(_):
                        log.info(f"{spec.prefix} Payment failed: {spec.reason}")
                        return OutcomeOk(FinalizeStatus.FAILED, message=spec.reason)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    """Converts Outcome to typed Result."""

    def __init__(self, outcome: Outcome, purchase_id: str) -> None:
        self.outcome = outcome
        self.purchase_id = purchase_id

    @classmethod
    def __compose__(cls, outcome: FinalizeRouting, spec_node: SpecNode) -> "FinalResultNode":
        return cls(outcome.value, spec_node.spec.event.purchase_id)

    def to_result(self) -> Result[FinalizeOutcome, FinalizeError]:
        match self.outcome:
            case OutcomeOk(status=status, payment=payment, order=order, message=message):
                return Ok(FinalizeOutcome(status, self.purchase_id, payment, order, message))
            case OutcomeError(kind=kind, message=message, cause=cause):
                return Error(FinalizeError(kind, message, cause))


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════

finalize_graph = G.graph(FinalResultNode)


async def run_finalize(spec: FinalizeSpec) -> Result[FinalizeOutcome, FinalizeError]:
    """Route one gateway event through the compiled graph."""
    node = await finalize_graph.run().inject(spec)
    return node.to_result()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "FinalizeSpec",
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    "SpecNode",
    "IgnoredEventNode",
    "ActionableEventNode",
    "FetchPaymentNode",
    "StoreErrorNode",
    "ExistingPaymentNode",
    "PendingFailureNode",
    "NoPaymentNode",
    "IntentLookupNode",
    "VerifiedIntentNode",
    "FinalizeRouting",
    "FinalResultNode",
    "finalize_graph",
    "run_finalize",
)

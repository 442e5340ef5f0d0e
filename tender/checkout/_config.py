"""
Checkout configuration.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class CheckoutConfig:
    """
    Checkout behavior.

    Example:
        config = (
            CheckoutConfig()
            .with_intent_ttl(minutes=15)
            .with_gateway_timeout(seconds=5)
        )

    intent_ttl: how long a created intent may be reused
    gateway_timeout: bound on the create-purchase call (seconds)
    alert_after_failures: failed processings of one purchase before an
        operator alert is logged
    payment_method: recorded on payment rows
    """

    intent_ttl: timedelta = timedelta(minutes=30)
    gateway_timeout: float = 10.0
    alert_after_failures: int = 3
    payment_method: str = "gateway"

    def with_intent_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> CheckoutConfig:
        """
        Set intent lifetime.

        Example:
            .with_intent_ttl(minutes=30)
            .with_intent_ttl(delta=timedelta(hours=1))
        """
        if delta is not None:
            ttl = delta
        else:
            total_seconds = (seconds or 0) + (minutes or 0) * 60 + (hours or 0) * 3600
            ttl = timedelta(seconds=total_seconds)

        return CheckoutConfig(
            intent_ttl=ttl,
            gateway_timeout=self.gateway_timeout,
            alert_after_failures=self.alert_after_failures,
            payment_method=self.payment_method,
        )

    def with_gateway_timeout(self, *, seconds: float) -> CheckoutConfig:
        return CheckoutConfig(
            intent_ttl=self.intent_ttl,
            gateway_timeout=seconds,
            alert_after_failures=self.alert_after_failures,
            payment_method=self.payment_method,
        )

    def with_alert_after_failures(self, count: int) -> CheckoutConfig:
        return CheckoutConfig(
            intent_ttl=self.intent_ttl,
            gateway_timeout=self.gateway_timeout,
            alert_after_failures=count,
            payment_method=self.payment_method,
        )

    def with_payment_method(self, method: str) -> CheckoutConfig:
        return CheckoutConfig(
            intent_ttl=self.intent_ttl,
            gateway_timeout=self.gateway_timeout,
            alert_after_failures=self.alert_after_failures,
            payment_method=method,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CheckoutConfig:
        """
        Read TENDER_INTENT_TTL_MINUTES, TENDER_GATEWAY_TIMEOUT,
        TENDER_ALERT_AFTER_FAILURES and TENDER_PAYMENT_METHOD.
        Missing variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        default = cls()
        return cls(
            intent_ttl=timedelta(
                minutes=float(env.get("TENDER_INTENT_TTL_MINUTES", default.intent_ttl.total_seconds() / 60))
            ),
            gateway_timeout=float(env.get("TENDER_GATEWAY_TIMEOUT", default.gateway_timeout)),
            alert_after_failures=int(env.get("TENDER_ALERT_AFTER_FAILURES", default.alert_after_failures)),
            payment_method=env.get("TENDER_PAYMENT_METHOD", default.payment_method),
        )


__all__ = ("CheckoutConfig",)

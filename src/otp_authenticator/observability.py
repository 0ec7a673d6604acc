"""Authenticator metrics for Prometheus integration.

Usage:
    ```python
    from otp_authenticator.observability import AuthenticatorMetrics

    metrics = AuthenticatorMetrics()
    with metrics.operation("verify", authenticator_type="totp") as result:
        ...
        result.set("locked")
    ```

``prometheus_client`` is an optional dependency (``pip install
otp-authenticator[metrics]``); without it every call is a no-op.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

_logger = logging.getLogger("otp_authenticator.observability")

if TYPE_CHECKING:
    from collections.abc import Generator


class _MetricsRegistry:
    """Lazily creates the Prometheus collectors on first use."""

    def __init__(self) -> None:
        self._histogram: Any = None
        self._counter: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        try:
            from prometheus_client import Counter, Histogram

            self._histogram = Histogram(
                "authenticator_operation_duration_seconds",
                "Authenticator operation duration",
                ["operation", "authenticator_type"],
            )
            self._counter = Counter(
                "authenticator_operations_total",
                "Authenticator operation count",
                ["operation", "authenticator_type", "result"],
            )
        except ImportError:
            _logger.debug("prometheus_client not available, metrics disabled")

        self._initialized = True

    @property
    def histogram(self) -> Any:
        self._ensure_initialized()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._ensure_initialized()
        return self._counter


# Collectors are process-global in prometheus_client, so the registry is too
_registry = _MetricsRegistry()


class OperationResult:
    """Mutable result label for an in-flight operation."""

    def __init__(self) -> None:
        self.value = "success"

    def set(self, value: str) -> None:
        self.value = value


class AuthenticatorMetrics:
    """Records duration and outcome of authenticator operations."""

    @contextmanager
    def operation(
        self,
        operation: str,
        *,
        authenticator_type: str = "unknown",
    ) -> Generator[OperationResult, None, None]:
        """Time an operation; the result label defaults to success/error.

        Args:
            operation: Operation name (create, attempt, verify, delete).
            authenticator_type: totp, sms or email.

        Yields:
            An :class:`OperationResult` the caller may relabel.
        """
        result = OperationResult()
        start = time.monotonic()

        try:
            yield result
        except Exception:
            if result.value == "success":
                result.set("error")
            raise
        finally:
            duration = time.monotonic() - start

            if _registry.histogram:
                try:
                    _registry.histogram.labels(
                        operation=operation,
                        authenticator_type=authenticator_type,
                    ).observe(duration)
                except Exception:  # noqa: BLE001
                    _logger.debug("Failed to record histogram")

            if _registry.counter:
                try:
                    _registry.counter.labels(
                        operation=operation,
                        authenticator_type=authenticator_type,
                        result=result.value,
                    ).inc()
                except Exception:  # noqa: BLE001
                    _logger.debug("Failed to record counter")


__all__: list[str] = ["AuthenticatorMetrics", "OperationResult"]

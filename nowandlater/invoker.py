"""Choosing a backend transport per call, with fallback and degraded mode."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from .errors import AccessLayerError, BusinessFailure, HttpFailure, MalformedResponse, TransportUnreachable
from .substitutes import SubstituteData
from .transport.health import BackendHealth, Transport
from .transport.legacy import LegacyTransport
from .transport.modern import ModernRoute, ModernTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESOURCE_CACHE_KEYS: Dict[str, Tuple[str, ...]] = {
    "tasks": ("tasks", "app-data"),
    "projects": ("projects", "app-data"),
    "areas": ("areas", "app-data"),
    "files": ("files",),
}

DEFAULT_RETRY_AFTER_SECONDS = 30.0


def cache_keys_for(resource_classes: Iterable[str]) -> List[str]:
    """Expand resource classes into the ordered, de-duplicated cache keys to drop."""
    keys: List[str] = []
    for resource in resource_classes:
        for key in RESOURCE_CACHE_KEYS.get(resource, (resource,)):
            if key not in keys:
                keys.append(key)
    return keys


@dataclass(frozen=True)
class Operation(Generic[T]):
    """One business operation as both backends know it.

    ``action`` is the legacy action name (``None`` for operations that only
    exist on the REST backend). ``invalidates`` lists the resource classes a
    successful call makes stale; an empty tuple marks a read.
    ``degradable`` says whether substitute data may stand in for the result.
    """

    action: Optional[str]
    parse: Callable[[Any], T]
    legacy_method: str = "POST"
    modern: Optional[ModernRoute] = None
    invalidates: Tuple[str, ...] = ()
    degradable: bool = True
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.action or (self.modern.path if self.modern else "operation")

    @property
    def mutating(self) -> bool:
        return bool(self.invalidates)


@dataclass(slots=True)
class InvokeResult(Generic[T]):
    data: T
    served_by: Transport

    @property
    def degraded(self) -> bool:
        return self.served_by is Transport.DEGRADED


class InvocationListener(Protocol):
    def on_invocation(self, operation: str, served_by: Transport) -> None: ...


class DualBackendInvoker:
    """Runs operations against the REST backend, the legacy one, or substitutes.

    Modern is tried first when preferred, healthy and the operation has a
    route. Transport and HTTP failures fall through to legacy when fallback
    is enabled; legacy failures end in degraded mode. Well-formed business
    failures are raised as-is and never retried on another transport.
    An unhealthy transport is skipped until ``retry_after_seconds`` have
    passed since its last failure, after which the next call probes it.
    """

    def __init__(
        self,
        modern: ModernTransport,
        legacy: LegacyTransport,
        *,
        prefer_modern: bool = False,
        enable_fallback: bool = True,
        substitutes: Optional[SubstituteData] = None,
        retry_after_seconds: float = DEFAULT_RETRY_AFTER_SECONDS,
        listeners: Iterable[InvocationListener] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._modern = modern
        self._legacy = legacy
        self.prefer_modern = prefer_modern
        self.enable_fallback = enable_fallback
        self._clock = clock
        self.substitutes = substitutes or SubstituteData(clock=clock)
        self.retry_after_seconds = retry_after_seconds
        self._listeners: List[InvocationListener] = list(listeners)
        self.health: Dict[Transport, BackendHealth] = {
            Transport.MODERN: BackendHealth(Transport.MODERN),
            Transport.LEGACY: BackendHealth(Transport.LEGACY),
        }

    def add_listener(self, listener: InvocationListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Flags and status
    # ------------------------------------------------------------------
    def enable_modern(self) -> None:
        self.prefer_modern = True
        logger.info("REST backend enabled")

    def disable_modern(self) -> None:
        self.prefer_modern = False
        logger.info("REST backend disabled, using legacy endpoint")

    @property
    def modern_available(self) -> bool:
        """True when writes will be seen by the REST backend's cache."""
        return self.prefer_modern and self.health[Transport.MODERN].healthy

    def backend_status(self) -> Dict[str, Any]:
        return {
            "preferModern": self.prefer_modern,
            "enableFallback": self.enable_fallback,
            "modernUrl": self._modern.base_url,
            "legacyUrl": self._legacy.url,
            "health": {t.value: h.to_dict() for t, h in self.health.items()},
        }

    async def check_legacy_health(self) -> bool:
        healthy = await self._legacy.health_check()
        legacy = self.health[Transport.LEGACY]
        if healthy:
            legacy.mark_healthy()
        else:
            legacy.mark_failed(TransportUnreachable("health check failed"), now=self._clock())
        return healthy

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------
    async def invoke(
        self,
        operation: Operation[T],
        args: Sequence[Any],
        token: Optional[str],
    ) -> InvokeResult[T]:
        """Run ``operation`` and report which transport served it.

        Raises:
            BusinessFailure: the backend answered ``success: false``.
            MalformedResponse: the legacy backend answered with unreadable data.
            AuthExpired: the credential could not be recovered.
            TransportUnreachable / HttpFailure: modern failed with fallback
                disabled, or no backend answered a non-degradable operation.
        """
        now = self._clock()
        modern_health = self.health[Transport.MODERN]
        legacy_health = self.health[Transport.LEGACY]
        last_error: Optional[Exception] = None

        wants_modern = self.prefer_modern or operation.action is None
        if wants_modern and operation.modern is not None and (
            modern_health.accepts_calls(now, self.retry_after_seconds) or not self.enable_fallback
        ):
            try:
                raw = await self._modern.call(operation.modern, args, token)
                data = self._parse(operation, raw, Transport.MODERN)
            except (TransportUnreachable, HttpFailure) as exc:
                modern_health.mark_failed(exc, now=self._clock())
                if not self.enable_fallback:
                    raise
                logger.warning("%s failed on REST backend (%s); falling back", operation.label, exc)
                last_error = exc
            else:
                modern_health.mark_healthy()
                return self._served(operation, data, Transport.MODERN)

        if operation.action is not None and legacy_health.accepts_calls(now, self.retry_after_seconds):
            try:
                envelope = await self._legacy.call(
                    operation.action, args, token, method=operation.legacy_method
                )
            except (TransportUnreachable, HttpFailure) as exc:
                legacy_health.mark_failed(exc, now=self._clock())
                logger.error("Legacy request failed for %s: %s", operation.action, exc)
                last_error = exc
            else:
                legacy_health.mark_healthy()
                if not envelope.success:
                    raise BusinessFailure(
                        envelope.message or f"{operation.label} failed", operation=operation.label
                    )
                data = self._parse(operation, envelope.data, Transport.LEGACY)
                return self._served(operation, data, Transport.LEGACY)

        return self._degraded(operation, args, last_error)

    def _degraded(
        self, operation: Operation[T], args: Sequence[Any], error: Optional[Exception]
    ) -> InvokeResult[T]:
        if not operation.degradable:
            if error is not None:
                raise error
            raise TransportUnreachable(f"No backend available for {operation.label}")
        logger.warning("Serving substitute data for %s (degraded mode)", operation.label)
        raw = self.substitutes.respond(operation.action or operation.label, args)
        return self._served(operation, self._parse(operation, raw, Transport.DEGRADED), Transport.DEGRADED)

    def _parse(self, operation: Operation[T], raw: Any, transport: Transport) -> T:
        """Turn ``raw`` into the operation's result type.

        Parser crashes on a well-formed envelope become ``MalformedResponse``,
        which the REST path treats like any other HTTP failure.
        """
        try:
            return operation.parse(raw)
        except AccessLayerError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error(
                "Unreadable %s data for %s: %r", transport.value, operation.label, exc
            )
            raise MalformedResponse(
                f"{operation.label} returned data that could not be read ({exc!r})"
            ) from exc

    def _served(self, operation: Operation[T], data: T, transport: Transport) -> InvokeResult[T]:
        for listener in list(self._listeners):
            listener.on_invocation(operation.label, transport)
        return InvokeResult(data=data, served_by=transport)

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------
    def should_invalidate(self, operation: Operation[Any], result: InvokeResult[Any]) -> bool:
        """Decide whether a write must be announced to the REST backend's cache.

        Writes served by the REST backend always are. Legacy writes are only
        when the REST backend is in use and healthy, since its cache would
        otherwise hide them; after a REST failure there is nothing to tell.
        """
        if not operation.mutating:
            return False
        if result.served_by is Transport.MODERN:
            return True
        if result.served_by is Transport.LEGACY:
            return self.modern_available
        return False

    async def invalidate_after(
        self, operation: Operation[Any], result: InvokeResult[Any], token: Optional[str]
    ) -> bool:
        if not self.should_invalidate(operation, result):
            logger.debug("Skipping cache invalidation for %s", operation.label)
            return False
        return await self._modern.invalidate(cache_keys_for(operation.invalidates), token)

"""Shared plumbing for the domain services."""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Type, TypeVar

from ..auth.tokens import TokenLifecycleManager
from ..errors import BusinessFailure, PendingCreationError, ValidationFailure
from ..invoker import DualBackendInvoker, InvokeResult, Operation

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T")

TEMP_ID_PREFIX = "temp-"


def entity(cls: Type[E], what: str) -> Callable[[Any], E]:
    """Parser for operations that must return exactly one entity."""

    def parse(data: Any) -> E:
        if not isinstance(data, dict):
            raise BusinessFailure(f"Failed to {what}: backend returned no data")
        return cls.from_dict(data)  # type: ignore[attr-defined]

    return parse


def entity_list(cls: Type[E], key: Optional[str] = None) -> Callable[[Any], List[E]]:
    """Parser for list results, accepting a bare list or ``{key: [...]}``."""

    def parse(data: Any) -> List[E]:
        items = data
        if key and isinstance(data, dict):
            items = data.get(key)
        return [cls.from_dict(item) for item in items or [] if isinstance(item, dict)]  # type: ignore[attr-defined]

    return parse


def nothing(data: Any) -> None:
    return None


def require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailure(f"{field} is required")
    return text


def require_id(value: Optional[str], field: str, kind: str) -> str:
    """Validate an entity id and reject temporary ids still awaiting creation."""
    entity_id = require_text(value, field)
    if entity_id.startswith(TEMP_ID_PREFIX):
        raise PendingCreationError(kind, entity_id)
    return entity_id


class DomainService:
    """Base class: gets a token, invokes, then announces writes to the cache."""

    def __init__(self, invoker: DualBackendInvoker, tokens: TokenLifecycleManager) -> None:
        self._invoker = invoker
        self._tokens = tokens

    async def _run(self, operation: Operation[T], *args: Any) -> InvokeResult[T]:
        token = await self._tokens.get_valid_token()
        result = await self._invoker.invoke(operation, args, token)
        if operation.mutating:
            await self._invoker.invalidate_after(operation, result, token)
        return result

    async def _call(self, operation: Operation[T], *args: Any) -> T:
        return (await self._run(operation, *args)).data


def arg(args: Sequence[Any], index: int, default: Any = None) -> Any:
    return args[index] if len(args) > index else default

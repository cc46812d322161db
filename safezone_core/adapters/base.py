"""Abstract base for position adapters.

Position adapters normalise raw payloads from heterogeneous producers
(collars, the virtual cow simulator, recovery-session agents) into the
canonical PositionEvent model.

Architectural rules:
    1. Adapters must NOT mutate the incoming payload dict.
    2. adapt() must return a fully valid PositionEvent or raise ValueError;
       the registry wraps any other failure the same way.
    3. No adapter may call the store or the pipeline directly.
    4. Zones reported by producers are ignored; the engine classifies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from safezone_core.domain.enums import ProducerKind
from safezone_core.domain.position import PositionEvent
from safezone_core.foundation.clock import utc_now


class PositionAdapter(ABC):
    """Base class for converting raw producer payloads into PositionEvents."""

    @abstractmethod
    def can_handle(self, raw: dict[str, Any]) -> bool:
        """Return True if this adapter knows how to translate *raw*.

        Must be a fast, non-destructive check (e.g. key presence).
        """
        ...

    @abstractmethod
    def adapt(self, raw: dict[str, Any]) -> PositionEvent:
        """Translate a raw payload dict into a validated PositionEvent.

        The input dict must NOT be mutated.

        Raises:
            ValueError: If the payload cannot be normalised.
        """
        ...

    @property
    @abstractmethod
    def producer(self) -> ProducerKind:
        """Kind of producer this adapter handles."""
        ...


def require(raw: dict[str, Any], key: str, producer: ProducerKind) -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise ValueError(f"{producer.value} payload missing '{key}'")
    return value


def require_coordinate(raw: dict[str, Any], key: str, producer: ProducerKind) -> float:
    """Read a numeric coordinate; numeric strings are accepted, bools are not."""
    value = require(raw, key, producer)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{producer.value} payload '{key}' is not a number: {value!r}")
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{producer.value} payload '{key}' is not a number: {value!r}") from None


def parse_timestamp(value: Any) -> datetime:
    """Accept ISO-8601 strings, epoch seconds or epoch milliseconds.

    A missing timestamp means "now": the fix is stamped on receipt.
    Out-of-range epochs raise ValueError like any other malformed value.
    """
    if value is None or value == "":
        return utc_now()
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        raise ValueError(f"unsupported timestamp: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"unsupported timestamp: {value!r}")

"""The provider capability every data source and gate implements."""

from typing import Any, Protocol, runtime_checkable

from tokenfeed.models.data_models import PriceRequest


@runtime_checkable
class Provider(Protocol):
    """One upstream data source.

    ``fetch`` raises on any problem; ``is_available`` lets a provider opt
    out up front (missing credentials, unsupported target, ...).
    Gates wrap a provider and satisfy the same protocol, so the fallback
    orchestrator cannot tell a raw provider from a gated one.
    """

    name: str

    async def fetch(self, request: PriceRequest) -> Any:
        ...

    async def is_available(self) -> bool:
        ...

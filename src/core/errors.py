"""Error types shared by the core engine and its adapters."""

from __future__ import annotations

from typing import Optional

from core.models import MessageChain


class TransportError(RuntimeError):
    """A single outbound call to the target platform failed."""

    def __init__(
        self,
        operation: str,
        description: str,
        error_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{operation} failed: {description}")
        self.operation = operation
        self.description = description
        self.error_code = error_code


class ChainStepError(RuntimeError):
    """A primary step of a dispatch or reconciliation failed.

    ``new_chain`` is the self-consistent chain as far as the engine got: it is
    what the caller should persist before deciding whether to retry.
    """

    def __init__(
        self,
        step: str,
        index: int,
        old_chain: Optional[MessageChain],
        new_chain: Optional[MessageChain],
    ) -> None:
        super().__init__(f"Chain step {step} failed at part {index}")
        self.step = step
        self.index = index
        self.old_chain = old_chain
        self.new_chain = new_chain

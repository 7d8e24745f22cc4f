"""Rendering protocol definitions using typing.Protocol."""

from typing import Protocol


class Executor(Protocol):
    """Turns diagram source into image bytes."""

    async def execute(self, source: str) -> bytes:
        """Render a diagram or raise ``RenderError``."""
        ...

    def available(self) -> bool:
        """Check whether the renderer can run at all."""
        ...

from typing import AsyncIterator, Protocol

from app.insights.application.prompts import Prompt


class TextGenerationProvider(Protocol):
    async def generate(self, prompt: Prompt) -> str:
        ...

    def stream(self, prompt: Prompt) -> AsyncIterator[str]:
        """Yield text fragments in order. Closing the iterator releases the upstream response."""
        ...

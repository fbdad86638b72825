"""Shared fixtures for the property assistant tests."""
import pytest

from aipa.ai.providers import Provider
from aipa.schemas import Listing


def _listing(**overrides) -> Listing:
    data = dict(
        id="listing-1",
        source_site="mock",
        source_url="https://example.pt/listing-1",
        title="Listing",
        price_eur=10000,
    )
    data.update(overrides)
    return Listing(**data)


@pytest.fixture
def make_listing():
    """Factory for Listing objects with sane defaults."""
    return _listing


class FakeProvider(Provider):
    """Scripted provider: each call pops the next reply, raising it when it is an exception."""

    def __init__(self, provider_id: str, replies=(), available: bool = True, is_cloud: bool = True):
        super().__init__(client=None, model=f"{provider_id}-model")
        self.id = provider_id
        self.name = provider_id.title()
        self.is_cloud = is_cloud
        self.replies = list(replies)
        self.available = available
        self.calls = 0
        self.prompts = []

    def configured(self) -> bool:
        return self.available

    async def is_available(self) -> bool:
        return self.available

    async def list_models(self):
        return [self.model]

    async def complete(self, prompt, system_prompt=None, history=()):
        self.calls += 1
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def make_provider():
    return FakeProvider

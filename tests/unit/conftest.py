import pytest


@pytest.fixture
def node(config):
    from fakes import FakeNode

    return FakeNode(config.program_id, config.base_account_id)


@pytest.fixture
def wallet_provider():
    from wallet.providers import MockProvider

    return MockProvider()

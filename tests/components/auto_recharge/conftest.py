import pytest

from tests.components.auto_recharge.factories import FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()

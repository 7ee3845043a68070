import pytest

from messaging.gateway import MessagingGateway


@pytest.fixture
def gateway(hub):
    return MessagingGateway(hub)


@pytest.fixture
def conversation(hire, application):
    """The conversation provisioned by hiring the tutor."""
    return hire(application).conversation

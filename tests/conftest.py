import pytest

from rcswitch_mqtt.config import TopicsConfig


@pytest.fixture
def topics() -> TopicsConfig:
    return TopicsConfig(subscribe_prefix="home/rf/cmd/", publish_prefix="home/rf/")

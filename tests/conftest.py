"""
Shared test fixtures.

`mock_bridge` stands in for `CANBridgeClient`; every frame handed to
`send_frame` is appended to the `sent` list in call order.
"""
from unittest.mock import AsyncMock

import pytest

from armbridge.bridge_client import CANBridgeClient


@pytest.fixture
def sent():
    return []


@pytest.fixture
def mock_bridge(sent):
    bridge = AsyncMock(spec=CANBridgeClient)

    async def record(msg):
        sent.append(msg)

    bridge.send_frame.side_effect = record
    return bridge

# armbridge/tests/unit/test_bridge_client.py
import base64
from unittest.mock import MagicMock

import pytest
import requests

from armbridge import constants as const
from armbridge.bridge_client import CANBridgeClient
from armbridge.exceptions import TransportError
from armbridge.frame_codec import build_write_frame


def _response(status_code=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return CANBridgeClient("http://bridge:5260/", timeout=3.0, session=session)


@pytest.fixture
def enable_frame():
    return build_write_frame("can0", 61, const.CMD_ENABLE, const.FLAG_NONE)


class TestSend:
    def test_posts_json_body(self, client, session, enable_frame):
        session.post.return_value = _response(200)

        client.send_frame_blocking(enable_frame)

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "http://bridge:5260/api/can"
        assert kwargs["timeout"] == 3.0
        body = kwargs["json"]
        assert body["interface"] == "can0"
        assert body["id"] == 0x0300FD3D
        assert body["extended"] is True
        assert base64.b64decode(body["data"]) == bytes(8)

    def test_non_2xx_raises_with_status(self, client, session, enable_frame):
        session.post.return_value = _response(500)
        with pytest.raises(TransportError) as exc_info:
            client.send_frame_blocking(enable_frame)
        assert exc_info.value.status_code == 500
        assert "[HTTP 500]" in str(exc_info.value)

    def test_request_exception_wrapped(self, client, session, enable_frame):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(TransportError) as exc_info:
            client.send_frame_blocking(enable_frame)
        assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)

    @pytest.mark.asyncio
    async def test_async_send_uses_session(self, client, session, enable_frame):
        session.post.return_value = _response(204)
        await client.send_frame(enable_frame)
        session.post.assert_called_once()


class TestPoll:
    def test_parses_hex_tokens(self, client, session):
        session.get.return_value = _response(
            200,
            {
                "data": {
                    "messages": [
                        {"hex_data": ["16", "70", "00", "00", "00", "00", "C0", "3F"]},
                        {"hex_data": ["1e", "70", "00", "00", "00", "00", "80", "3f"]},
                    ]
                }
            },
        )

        frames = client.poll_frames_blocking("can0", 0x11003DFD)

        args, kwargs = session.get.call_args
        assert args[0] == "http://bridge:5260/api/messages/can0"
        assert kwargs["params"] == {"id": 0x11003DFD}
        assert frames == [
            bytes([0x16, 0x70, 0, 0, 0, 0, 0xC0, 0x3F]),
            bytes([0x1E, 0x70, 0, 0, 0, 0, 0x80, 0x3F]),
        ]

    def test_non_json_body_is_empty(self, client, session):
        session.get.return_value = _response(200, json_error=True)
        assert client.poll_frames_blocking("can0", 1) == []

    def test_non_2xx_raises(self, client, session):
        session.get.return_value = _response(404)
        with pytest.raises(TransportError):
            client.poll_frames_blocking("can0", 1)

    def test_timeout_wrapped(self, client, session):
        session.get.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(TransportError):
            client.poll_frames_blocking("can0", 1)

    @pytest.mark.parametrize(
        "body",
        [
            None,
            [],
            {"data": None},
            {"data": {"messages": "nope"}},
            {"data": {"messages": [{"hex_data": ["zz"]}, {"other": 1}, "x"]}},
        ],
    )
    def test_malformed_bodies_yield_no_frames(self, body):
        assert CANBridgeClient.parse_messages(body) == []

    @pytest.mark.asyncio
    async def test_async_poll(self, client, session):
        session.get.return_value = _response(200, {"data": {"messages": []}})
        assert await client.poll_frames("can0", 1) == []


def test_close_closes_session(client, session):
    client.close()
    session.close.assert_called_once()

# armbridge/armbridge/bridge_client.py
"""
CAN bridge client.
Sends single CAN frames to the HTTP CAN bridge and polls its per-interface
inbox. The bridge is reached with a blocking `requests` session; the async
methods run those calls in the event loop's default executor so that many
motors can share one client concurrently.
"""
from typing import Any, Dict, List, Optional

import asyncio
import base64
import functools
import logging

import requests
from can import Message as CanMessage

from .constants import BRIDGE_DEFAULT_URL
from .constants import BRIDGE_HTTP_TIMEOUT_SECONDS
from .constants import BRIDGE_MESSAGES_ENDPOINT
from .constants import BRIDGE_SEND_ENDPOINT
from .exceptions import TransportError

logger = logging.getLogger(__name__)


class CANBridgeClient:
    """
    Talks to the HTTP CAN bridge that owns the physical CAN adapters.
    """

    def __init__(
        self,
        base_url: str = BRIDGE_DEFAULT_URL,
        timeout: float = BRIDGE_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        """
        Initializes the bridge client.

        Args:
            base_url: Root URL of the CAN bridge (e.g. 'http://localhost:5260').
            timeout: Timeout in seconds applied to every HTTP request.
            session: Optional pre-built `requests.Session` (useful for tests or
                     custom adapters). A new session is created if omitted.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        logger.info(f"CANBridgeClient configured for bridge at {self.base_url}")

    @staticmethod
    def frame_to_payload(msg: CanMessage) -> Dict[str, Any]:
        """Converts a frame into the bridge's JSON send body."""
        return {
            "interface": msg.channel,
            "id": msg.arbitration_id,
            "data": base64.b64encode(bytes(msg.data)).decode("ascii"),
            "extended": bool(msg.is_extended_id),
        }

    @staticmethod
    def parse_messages(body: Any) -> List[bytes]:
        """
        Extracts payloads from a bridge inbox response.

        Each message carries its payload as a list of two-digit hex tokens,
        index 0 being the lowest payload byte. Anything that does not match
        that shape is treated as "no frames".
        """
        if not isinstance(body, dict):
            return []
        data = body.get("data")
        if not isinstance(data, dict):
            return []
        messages = data.get("messages")
        if not isinstance(messages, list):
            return []

        frames: List[bytes] = []
        for message in messages:
            tokens = message.get("hex_data") if isinstance(message, dict) else None
            if not isinstance(tokens, list):
                continue
            try:
                frames.append(bytes(int(token, 16) for token in tokens))
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed bridge message {message!r}: {e}")
        return frames

    def send_frame_blocking(self, msg: CanMessage) -> None:
        """
        Sends one frame through the bridge.

        Raises:
            TransportError: if the request fails or the bridge answers non-2xx.
        """
        url = self.base_url + BRIDGE_SEND_ENDPOINT
        payload = self.frame_to_payload(msg)
        logger.debug(
            f"Sending on {msg.channel}: ID={msg.arbitration_id:08X}, "
            f"Data={' '.join(f'{b:02X}' for b in msg.data)}"
        )
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"Failed to send frame {msg.arbitration_id:08X} on {msg.channel}: {e}"
            ) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Bridge rejected frame {msg.arbitration_id:08X} on {msg.channel}",
                status_code=response.status_code,
            )

    def poll_frames_blocking(self, interface: str, can_id: int) -> List[bytes]:
        """
        Fetches the frames the bridge observed on `interface` with identifier `can_id`.

        Returns:
            A list of payloads; empty when the inbox is empty or the body is malformed.

        Raises:
            TransportError: if the request fails or the bridge answers non-2xx.
        """
        url = f"{self.base_url}{BRIDGE_MESSAGES_ENDPOINT}/{interface}"
        try:
            response = self.session.get(
                url, params={"id": can_id}, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"Failed to poll {interface} for ID {can_id:08X}: {e}"
            ) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Bridge poll failed on {interface} for ID {can_id:08X}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            logger.debug(f"Bridge poll on {interface} returned a non-JSON body.")
            return []
        return self.parse_messages(body)

    async def send_frame(self, msg: CanMessage) -> None:
        """Async form of `send_frame_blocking`."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, functools.partial(self.send_frame_blocking, msg)
        )

    async def poll_frames(self, interface: str, can_id: int) -> List[bytes]:
        """Async form of `poll_frames_blocking`."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.poll_frames_blocking, interface, can_id)
        )

    def close(self) -> None:
        """Closes the underlying HTTP session."""
        self.session.close()
        logger.info("CANBridgeClient session closed.")

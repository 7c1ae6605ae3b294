# src/rtc_infer/signaling/transport.py
from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from loguru import logger

from rtc_infer.config import SignalingConfig
from rtc_infer.errors import SignalingError, SignalingProtocolError
from rtc_infer.signaling.messages import IceCandidate, SdpKind, SdpMessage


class SignalingTransport:
    """
    One-shot HTTP exchanges with the signaling endpoint.

    Two independent calls: offer -> answer, and candidate push. There is no
    session on the server side, so every call opens its own ClientSession.
    """
    def __init__(self, cfg: SignalingConfig):
        self.cfg = cfg

    def _post_kwargs(self) -> Dict[str, Any]:
        kw: Dict[str, Any] = {"headers": {"Content-Type": "application/json"}}
        if not self.cfg.verify_tls:
            kw["ssl"] = False
        return kw

    async def exchange_offer(self, offer: SdpMessage) -> SdpMessage:
        if offer.kind is not SdpKind.OFFER:
            raise ValueError(f"expected an offer, got {offer.kind.value}")

        timeout = ClientTimeout(total=float(self.cfg.timeout_s))
        try:
            async with ClientSession(timeout=timeout) as session:
                async with session.post(self.cfg.offer_url, json=offer.to_wire(), **self._post_kwargs()) as resp:
                    body = await resp.text()
                    status = resp.status
        except asyncio.TimeoutError as exc:
            raise SignalingError(f"offer POST to {self.cfg.offer_url} timed out after {self.cfg.timeout_s}s") from exc
        except aiohttp.ClientError as exc:
            raise SignalingError(f"offer POST to {self.cfg.offer_url} failed: {exc}") from exc

        if not 200 <= status < 300:
            raise SignalingError(f"offer POST returned HTTP {status}: {body[:200]!r}", status=status)

        logger.debug(f"[signaling] answer body: {body}")
        return parse_answer(body)

    async def send_candidate(self, candidate: IceCandidate) -> bool:
        """
        Fire-and-forget candidate push. Failures are logged, never raised or
        retried; the response body is ignored.
        """
        timeout = ClientTimeout(total=float(self.cfg.timeout_s))
        try:
            async with ClientSession(timeout=timeout) as session:
                async with session.post(self.cfg.candidate_url, json=candidate.to_wire(), **self._post_kwargs()) as resp:
                    if not 200 <= resp.status < 300:
                        logger.warning(f"[signaling] candidate POST returned HTTP {resp.status}")
                        return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(f"[signaling] send ICE candidate failed: {exc!r}")
            return False
        return True


def parse_answer(body: Optional[str]) -> SdpMessage:
    """
    Decode `{"Sdp": ..., "Type": "answer"}`. Lower-case keys, as aiortc based
    servers tend to send, are accepted too.
    """
    if body is None or not body.strip():
        raise SignalingProtocolError("server response is empty")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise SignalingProtocolError(f"server response is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SignalingProtocolError(f"server response must be an object, got {type(data).__name__}")

    sdp = data.get("Sdp", data.get("sdp"))
    kind = data.get("Type", data.get("type", SdpKind.ANSWER.value))
    if not isinstance(sdp, str) or not sdp.strip():
        raise SignalingProtocolError("parsed SDP is null or empty")
    if str(kind).lower() != SdpKind.ANSWER.value:
        raise SignalingProtocolError(f"expected an answer, server sent type={kind!r}")
    return SdpMessage(sdp=sdp, kind=SdpKind.ANSWER)

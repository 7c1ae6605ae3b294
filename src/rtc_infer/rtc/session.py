# src/rtc_infer/rtc/session.py
from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Set, Tuple, Union

import cv2
from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.exceptions import InvalidStateError
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp
from loguru import logger
from pyee.asyncio import AsyncIOEventEmitter

from rtc_infer.config import SessionConfig
from rtc_infer.errors import MediaTimeout, NegotiationError, SignalingError
from rtc_infer.rtc.base import ICE_LOST_STATES, PeerStatsHandle, SessionState
from rtc_infer.rtc.tracks import FrameSurface, SurfacePump, SurfaceVideoTrack
from rtc_infer.signaling.messages import IceCandidate, SdpKind, SdpMessage
from rtc_infer.signaling.transport import SignalingTransport
from rtc_infer.source.base import VideoSource, source_ready

PeerFactory = Callable[[RTCConfiguration], Any]


def _default_peer_factory(config: RTCConfiguration) -> RTCPeerConnection:
    return RTCPeerConnection(configuration=config)


class PeerSessionManager(AsyncIOEventEmitter):
    """
    Offering side of one WebRTC session against a fixed signaling endpoint.

    Events:
      "state"             (SessionState)  every transition, in order
      "message"           (bytes)         one per inbound data-channel message
      "channel_open"      ()              the outbound data channel opened
      "negotiation_error" (Exception)     the attempt stopped short of Connected

    Only start() and close() move the state. Engine callbacks (ICE
    candidates, ICE state, inbound channels) only read it; ICE state changes
    are queued and applied by the session's own watcher task.
    """
    def __init__(
        self,
        cfg: SessionConfig,
        source: Optional[VideoSource],
        transport: SignalingTransport,
        *,
        pc_factory: Optional[PeerFactory] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(loop=loop)
        self.cfg = cfg
        self.source = source
        self.transport = transport
        self._pc_factory = pc_factory or _default_peer_factory

        self._state = SessionState.IDLE
        self.last_error: Optional[Exception] = None

        self._pc: Optional[Any] = None
        self._channel: Optional[Any] = None
        self._remote_channels: List[Any] = []
        self._track: Optional[SurfaceVideoTrack] = None
        self._surface: Optional[FrameSurface] = None
        self._pump: Optional[SurfacePump] = None

        self._offer_sent = False
        self._closing = False
        self._remote_set = False
        self._pending_local: List[IceCandidate] = []
        self._pending_remote: List[IceCandidate] = []
        self._ice_events: Optional["asyncio.Queue[str]"] = None
        self._ice_watch: Optional[asyncio.Task] = None
        self._bg: Set[asyncio.Future] = set()

    # ---------------------- queries ----------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def channel_state(self) -> str:
        return self._channel.readyState if self._channel is not None else "none"

    @property
    def surface(self) -> Optional[FrameSurface]:
        return self._surface

    def stats_handle(self) -> PeerStatsHandle:
        return PeerStatsHandle(lambda: self._pc)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        if self._closing and state is not SessionState.CLOSED:
            return
        logger.info(f"[session] {self._state.value} -> {state.value}")
        self._state = state
        self.emit("state", state)

    # ---------------------- negotiation flow ----------------------
    async def start(self) -> SessionState:
        """
        Run the negotiation to completion.

        Raises MediaTimeout when the video source never becomes usable.
        Signaling and SDP failures end the attempt without raising: the
        returned state is not CONNECTED and `last_error` says why. A close()
        that lands while this is suspended makes it return CLOSED.
        """
        if self._state is not SessionState.IDLE:
            raise NegotiationError(f"start() called in state {self._state.value}")

        self._set_state(SessionState.AWAITING_LOCAL_MEDIA)
        width, height = await self._wait_for_media()
        if self._closing:
            return SessionState.CLOSED

        self._set_state(SessionState.NEGOTIATING_OFFER)
        pc = self._build_peer(width, height)

        try:
            offer = await pc.createOffer()
            if self._closing:
                return SessionState.CLOSED
            await pc.setLocalDescription(offer)
        except Exception as exc:
            if self._closing:
                return SessionState.CLOSED
            return self._fail(NegotiationError(f"creating the offer failed: {exc}"), f"creating the offer failed: {exc}")
        if self._closing:
            return SessionState.CLOSED
        local = SdpMessage(sdp=pc.localDescription.sdp, kind=SdpKind.OFFER)
        logger.debug(f"[session] SDP offer:\n{local.sdp}")

        self._set_state(SessionState.AWAITING_ANSWER)
        try:
            answer = await self.transport.exchange_offer(local)
        except SignalingError as exc:
            if self._closing:
                return SessionState.CLOSED
            return self._fail(exc, f"signaling failed: {exc}")
        if self._closing:
            return SessionState.CLOSED

        self._offer_sent = True
        self._flush_local_candidates()

        if not answer.has_video():
            return self._fail(
                NegotiationError("SDP answer has no video m-line"),
                "SDP answer does not include a video m-line, server does not support the video stream",
            )

        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=answer.sdp, type="answer"))
        except Exception as exc:
            if self._closing:
                return SessionState.CLOSED
            return self._fail(NegotiationError(f"setRemoteDescription failed: {exc}"), f"setRemoteDescription failed: {exc}")
        if self._closing:
            return SessionState.CLOSED

        self._remote_set = True
        logger.info("[session] remote description applied")
        self._set_state(SessionState.CONNECTED)
        await self._replay_remote_candidates(pc)
        if self._closing:
            return SessionState.CLOSED
        self._ice_watch = asyncio.ensure_future(self._watch_ice())
        return self._state

    def _fail(self, exc: Exception, message: str) -> SessionState:
        logger.error(f"[session] {message}")
        self.last_error = exc
        self.emit("negotiation_error", exc)
        return self._state

    async def _wait_for_media(self) -> Tuple[int, int]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + float(self.cfg.media_timeout_s)
        while not source_ready(self.source, self.cfg.min_frame_dim):
            if self._closing:
                return 0, 0
            if loop.time() >= deadline:
                exc = MediaTimeout(self.cfg.media_timeout_s)
                logger.error(f"[session] timeout waiting for video source: {exc}")
                self.last_error = exc
                raise exc
            await asyncio.sleep(float(self.cfg.media_poll_s))
        assert self.source is not None
        logger.info(f"[session] video source ready: {self.source.width}x{self.source.height}")
        return self.source.width, self.source.height

    def _build_peer(self, width: int, height: int) -> Any:
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in self.cfg.ice_servers])
        pc = self._pc_factory(config)
        self._pc = pc
        self._ice_events = asyncio.Queue()

        @pc.on("icecandidate")
        def on_icecandidate(candidate):
            if candidate is None:
                return
            self._on_local_candidate(candidate)

        @pc.on("iceconnectionstatechange")
        def on_iceconnectionstatechange():
            state = pc.iceConnectionState
            logger.info(f"[session] ICE connection state: {state}")
            self._ice_events.put_nowait(state)

        @pc.on("datachannel")
        def on_datachannel(channel):
            logger.info(f"[session] inbound data channel: {channel.label}")
            self._remote_channels.append(channel)
            self._wire_channel(channel)

        self._surface = FrameSurface(width, height)
        self._pump = SurfacePump(self.source, self._surface, fps=self.cfg.fps)
        self._pump.start()

        self._track = SurfaceVideoTrack(self._surface)
        pc.addTrack(self._track)

        self._channel = pc.createDataChannel(
            self.cfg.channel_label, ordered=True, protocol=self.cfg.channel_protocol
        )
        self._wire_channel(self._channel)

        @self._channel.on("open")
        def on_open():
            logger.info(f"[session] data channel '{self._channel.label}' open")
            self.emit("channel_open")

        return pc

    def _wire_channel(self, channel: Any) -> None:
        @channel.on("message")
        def on_message(message):
            self._on_message(message)

    def _on_message(self, message: Union[bytes, str]) -> None:
        data = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        logger.debug(f"[session] inbound message ({len(data)} bytes)")
        self.emit("message", data)

    async def _watch_ice(self) -> None:
        assert self._ice_events is not None
        while True:
            state = await self._ice_events.get()
            if state in ICE_LOST_STATES and self._state is SessionState.CONNECTED:
                logger.warning(f"[session] peer connection lost (ICE {state})")
                self._set_state(SessionState.DISCONNECTED)

    # ---------------------- ICE candidates ----------------------
    def _on_local_candidate(self, candidate: Any) -> None:
        ice = IceCandidate(
            candidate="candidate:" + candidate_to_sdp(candidate),
            sdp_mid=candidate.sdpMid or "",
            sdp_mline_index=candidate.sdpMLineIndex or 0,
        )
        logger.debug(f"[session] new local ICE candidate: {ice.candidate}")
        if self._closing:
            return
        if not self._offer_sent:
            if self.cfg.buffer_early_candidates:
                self._pending_local.append(ice)
            else:
                logger.warning("[session] dropping local candidate discovered before the offer was sent")
            return
        self._spawn(self.transport.send_candidate(ice))

    def _flush_local_candidates(self) -> None:
        pending, self._pending_local = self._pending_local, []
        for ice in pending:
            self._spawn(self.transport.send_candidate(ice))

    def _spawn(self, coro) -> None:
        fut = asyncio.ensure_future(coro)
        self._bg.add(fut)
        fut.add_done_callback(self._bg.discard)

    async def add_remote_candidate(self, candidate: IceCandidate) -> bool:
        """
        Apply a candidate from the remote peer. Held back until the remote
        description exists, then replayed in arrival order.
        """
        if self._closing:
            return False
        if self._pc is None or not self._remote_set:
            if self.cfg.buffer_early_candidates:
                self._pending_remote.append(candidate)
                return False
            logger.warning("[session] dropping remote candidate received before the remote description")
            return False
        return await self._apply_remote(self._pc, candidate)

    async def _apply_remote(self, pc: Any, candidate: IceCandidate) -> bool:
        raw = candidate.candidate
        if raw.startswith("candidate:"):
            raw = raw.split(":", 1)[1]
        try:
            cand = candidate_from_sdp(raw)
        except (ValueError, IndexError) as exc:
            logger.warning(f"[session] bad remote candidate {candidate.candidate!r}: {exc}")
            return False
        cand.sdpMid = candidate.sdp_mid
        cand.sdpMLineIndex = candidate.sdp_mline_index
        await pc.addIceCandidate(cand)
        return True

    async def _replay_remote_candidates(self, pc: Any) -> None:
        pending, self._pending_remote = self._pending_remote, []
        for c in pending:
            if self._closing:
                return
            await self._apply_remote(pc, c)

    # ---------------------- outbound data ----------------------
    def send(self, data: Union[bytes, str]) -> bool:
        """Send on the data channel if it is open; otherwise drop, never queue."""
        ch = self._channel
        if ch is None or ch.readyState != "open":
            logger.warning(f"[session] data channel not open yet, state: {self.channel_state}")
            return False
        try:
            ch.send(data)
        except InvalidStateError as exc:
            logger.warning(f"[session] data channel send failed: {exc}")
            return False
        return True

    def send_frame(self, quality: int = 80) -> bool:
        """JPEG-encode the surface's current frame and send it."""
        frame = self._surface.snapshot() if self._surface is not None else None
        if frame is None:
            logger.warning("[session] no frame on the surface yet, nothing to send")
            return False
        ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
        if not ok:
            logger.warning("[session] JPEG encoding failed")
            return False
        data = buf.tobytes()
        sent = self.send(data)
        if sent:
            logger.debug(f"[session] image sent, size: {len(data)} bytes")
        return sent

    # ---------------------- teardown ----------------------
    async def close(self) -> None:
        """
        Release peer connection, data channel, outbound track and render
        surface, in that order. Safe from any state, any number of times.
        """
        if self._closing:
            return
        # set before the first await so a suspended start() backs off
        self._closing = True

        for fut in [self._ice_watch, *self._bg]:
            if fut is not None:
                fut.cancel()
        self._ice_watch = None
        self._bg.clear()
        if self._pump is not None:
            self._pump.stop()

        pc, self._pc = self._pc, None
        if pc is not None:
            try:
                await pc.close()
            except Exception as exc:
                logger.warning(f"[session] closing peer connection: {exc!r}")

        channels = [c for c in [self._channel, *self._remote_channels] if c is not None]
        self._channel = None
        self._remote_channels = []
        for ch in channels:
            try:
                ch.close()
            except Exception as exc:
                logger.warning(f"[session] closing data channel: {exc!r}")

        track, self._track = self._track, None
        if track is not None:
            try:
                track.stop()
            except Exception as exc:
                logger.warning(f"[session] stopping video track: {exc!r}")

        surface, self._surface = self._surface, None
        if surface is not None:
            surface.release()

        self._pending_local.clear()
        self._pending_remote.clear()
        self._set_state(SessionState.CLOSED)
        self.remove_all_listeners()

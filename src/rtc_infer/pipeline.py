# src/rtc_infer/pipeline.py
from __future__ import annotations

import asyncio
from typing import List, Optional, Set

from loguru import logger
from pyee.asyncio import AsyncIOEventEmitter

from rtc_infer.config import PipelineConfig
from rtc_infer.errors import DetectionDecodeError
from rtc_infer.metrics.latency import FusedLatency, LatencyFusionEngine
from rtc_infer.metrics.stats import StatsSample, StatsSampler
from rtc_infer.protocol.detections import DetectionProtocolParser, MessageKind
from rtc_infer.rtc.session import PeerSessionManager


class InferencePipeline(AsyncIOEventEmitter):
    """
    Inbound message -> detections + fused latency.

    Events (delivered in message arrival order):
      "detections"      (DetectionFrame)
      "detection_error" (Exception)      consumers should clear their display
      "rtt"             (rtt_s, stats_id) one per qualifying stats entry
      "latency"         (FusedLatency)    one per non-control message

    The pipeline gets the session at construction, listens to its "message"
    event, and only ever reads stats through the session's stats handle.
    """
    def __init__(
        self,
        session: PeerSessionManager,
        cfg: Optional[PipelineConfig] = None,
        *,
        parser: Optional[DetectionProtocolParser] = None,
        fusion: Optional[LatencyFusionEngine] = None,
        sampler: Optional[StatsSampler] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(loop=loop)
        self.cfg = cfg or PipelineConfig()
        self.session = session
        self.parser = parser or DetectionProtocolParser()
        self.fusion = fusion or LatencyFusionEngine()
        self.sampler = sampler or StatsSampler(
            session.stats_handle(), fallback_remote_inbound=self.cfg.rtt_from_remote_inbound
        )
        self._handle_lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Future] = set()
        self._closed = False
        session.on("message", self._on_message)

    def _on_message(self, data: bytes) -> None:
        if self._closed:
            return
        fut = asyncio.ensure_future(self.handle(data))
        self._tasks.add(fut)
        fut.add_done_callback(self._tasks.discard)

    async def handle(self, data: bytes) -> Optional[FusedLatency]:
        if self._handle_lock is None:
            self._handle_lock = asyncio.Lock()
        async with self._handle_lock:
            return await self._handle(data)

    async def _handle(self, data: bytes) -> Optional[FusedLatency]:
        try:
            frame = self.parser.parse(data)
        except DetectionDecodeError as exc:
            logger.error(f"[pipeline] error handling inference result: {exc}")
            self.emit("detection_error", exc)
        else:
            if frame.kind is MessageKind.CONTROL:
                logger.debug("[pipeline] control message, no detections or latency")
                return None
            logger.debug(f"[pipeline] found {len(frame)} detections")
            self.emit("detections", frame)

        self.fusion.ingest(data)
        for smp in await self._sample():
            self.fusion.observe_rtt(smp.rtt_s)
            self.emit("rtt", smp.rtt_s, smp.stats_id)

        fused = self.fusion.current()
        logger.info(
            f"[latency] inference {fused.inference_time_ms:.2f} ms + rtt {fused.rtt_ms:.2f} ms "
            f"= total {fused.total_ms:.2f} ms"
        )
        self.emit("latency", fused)
        return fused

    async def _sample(self) -> List[StatsSample]:
        try:
            return await self.sampler.sample()
        except Exception as exc:
            logger.error(f"[pipeline] failed to get stats: {exc!r}")
            return []

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_message in self.session.listeners("message"):
            self.session.remove_listener("message", self._on_message)
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self.remove_all_listeners()

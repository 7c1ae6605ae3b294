# src/rtc_infer/cli.py
from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence, Tuple

from loguru import logger

from rtc_infer.config import ClientConfig, load_config
from rtc_infer.errors import MediaTimeout
from rtc_infer.log import configure_logging
from rtc_infer.pipeline import InferencePipeline
from rtc_infer.presentation.board import DetectionBoard
from rtc_infer.presentation.labels import load_labels
from rtc_infer.protocol.detections import DetectionFrame
from rtc_infer.rtc.base import SessionState
from rtc_infer.rtc.session import PeerSessionManager
from rtc_infer.signaling.transport import SignalingTransport
from rtc_infer.source.camera import CameraVideoSource
from rtc_infer.source.synthetic import SyntheticVideoSource
from rtc_infer.telemetry.sinks import JsonlSink


def _parse_size(text: str) -> Tuple[int, int]:
    try:
        w, h = text.lower().split("x", 1)
        return int(w), int(h)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected WxH, got {text!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtc-infer",
        description="Stream video to a remote detector over WebRTC and log detections and latency",
    )
    parser.add_argument("--config", default=None, help="JSON config file (signaling/session/pipeline sections)")
    parser.add_argument("--offer-url", default=None)
    parser.add_argument("--candidate-url", default=None)
    parser.add_argument("--stun", action="append", default=None, help="ICE server URL, repeatable")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--camera", type=int, default=None, help="cv2 camera index")
    src.add_argument("--synthetic", type=_parse_size, default=None, metavar="WxH")
    parser.add_argument("--insecure", action="store_true", help="skip TLS certificate checks")
    parser.add_argument("--seconds", type=float, default=0.0, help="run time, 0 = until Ctrl-C")
    parser.add_argument("--send-interval", type=float, default=0.0, help="seconds between JPEG sends, 0 = off")
    parser.add_argument("--metrics-out", default=None, help="append fused latency records to this JSONL file")
    parser.add_argument("--log-level", default="INFO")
    return parser


def config_from_args(args: argparse.Namespace) -> ClientConfig:
    cfg = load_config(args.config) if args.config else ClientConfig()
    if args.offer_url:
        cfg.signaling.offer_url = args.offer_url
    if args.candidate_url:
        cfg.signaling.candidate_url = args.candidate_url
    if args.insecure:
        cfg.signaling.verify_tls = False
    if args.stun:
        cfg.session.ice_servers = list(args.stun)
    return cfg


async def run(cfg: ClientConfig, args: argparse.Namespace) -> int:
    if args.camera is not None:
        source = CameraVideoSource(args.camera)
    else:
        w, h = args.synthetic or (640, 480)
        source = SyntheticVideoSource(w, h)
    try:
        source.start()
    except RuntimeError as exc:
        logger.error(f"[client] cannot start video source: {exc}")
        return 4

    labels = load_labels(cfg.pipeline.labels_path) if cfg.pipeline.labels_path else None
    board = DetectionBoard(
        max_boxes=cfg.pipeline.max_boxes,
        confidence_threshold=cfg.pipeline.confidence_threshold,
        clear_grace_s=cfg.pipeline.clear_grace_s,
        labels=labels,
    )
    sink = JsonlSink(args.metrics_out) if args.metrics_out else None

    session = PeerSessionManager(cfg.session, source, SignalingTransport(cfg.signaling))
    pipeline = InferencePipeline(session, cfg.pipeline)

    @pipeline.on("detections")
    def on_detections(frame: DetectionFrame):
        boxes = board.apply(frame)
        for b in boxes:
            logger.info(f"[detect] {b.label} @ ({b.x:.0f},{b.y:.0f}) {b.width:.0f}x{b.height:.0f}")

    pipeline.on("detection_error", board.on_error)

    if sink is not None:
        pipeline.on("latency", sink.write_latency)

    rc = 0
    try:
        state = await session.start()
        if state is not SessionState.CONNECTED:
            logger.error(f"[client] negotiation ended in state {state.value}: {session.last_error}")
            rc = 2
        else:
            loop = asyncio.get_running_loop()
            end = loop.time() + args.seconds if args.seconds > 0 else None
            next_send = loop.time()
            while end is None or loop.time() < end:
                if session.state is not SessionState.CONNECTED:
                    logger.warning(f"[client] session is {session.state.value}, stopping")
                    rc = 3
                    break
                if args.send_interval > 0 and loop.time() >= next_send:
                    session.send_frame()
                    next_send = loop.time() + args.send_interval
                board.tick()
                await asyncio.sleep(0.1)
    except MediaTimeout as exc:
        logger.error(f"[client] {exc}")
        rc = 1
    finally:
        await pipeline.close()
        await session.close()
        source.close()
        if sink is not None:
            sink.close()
    return rc


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    cfg = config_from_args(args)
    try:
        return asyncio.run(run(cfg, args))
    except KeyboardInterrupt:
        logger.info("[client] stopped by user")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

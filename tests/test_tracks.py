"""Tests covering video sources, the render surface and the outbound track."""

import asyncio

import numpy as np
import pytest

from rtc_infer.rtc.tracks import FrameSurface, SurfacePump, SurfaceVideoTrack
from rtc_infer.source.base import source_ready
from rtc_infer.source.synthetic import SyntheticVideoSource

from fakes import StubSource


def test_synthetic_source_ready_only_while_playing() -> None:
    src = SyntheticVideoSource(64, 48)

    assert not source_ready(src, 16)
    assert src.read() is None

    src.start()
    assert source_ready(src, 16)
    assert src.read().shape == (48, 64, 3)

    src.close()
    assert (src.width, src.height) == (0, 0)


@pytest.mark.parametrize("w,h,ready", [(17, 17, True), (16, 200, False), (1, 1, False), (0, 0, False)])
def test_source_ready_needs_real_size(w, h, ready) -> None:
    assert source_ready(StubSource(w, h), 16) is ready


def test_source_ready_none() -> None:
    assert source_ready(None, 16) is False


def test_surface_rejects_empty_size() -> None:
    with pytest.raises(ValueError):
        FrameSurface(0, 10)


def test_blit_resizes_to_surface() -> None:
    surface = FrameSurface(32, 24)

    surface.blit(np.zeros((48, 64, 3), dtype=np.uint8))

    assert surface.snapshot().shape == (24, 32, 3)
    assert surface.frames_copied == 1


def test_released_surface_ignores_frames() -> None:
    surface = FrameSurface(32, 24)
    surface.release()

    surface.blit(np.zeros((24, 32, 3), dtype=np.uint8))

    assert surface.snapshot() is None
    assert surface.released


def test_pump_step_is_noop_without_playing_source() -> None:
    surface = FrameSurface(64, 48)

    assert SurfacePump(None, surface).step() is False
    assert SurfacePump(SyntheticVideoSource(64, 48), surface).step() is False
    assert surface.frames_copied == 0


def test_pump_copies_frames() -> None:
    src = SyntheticVideoSource(64, 48)
    src.start()
    surface = FrameSurface(64, 48)

    assert SurfacePump(src, surface).step() is True
    assert surface.frames_copied == 1


def test_track_sends_black_until_first_frame() -> None:
    async def go():
        surface = FrameSurface(64, 48)
        track = SurfaceVideoTrack(surface)
        first = await track.recv()
        surface.blit(np.full((48, 64, 3), 200, dtype=np.uint8))
        second = await track.recv()
        track.stop()
        return first.to_ndarray(format="bgr24"), second.to_ndarray(format="bgr24")

    first, second = asyncio.run(go())

    assert first.shape == (48, 64, 3)
    assert first.max() == 0
    assert second.min() == 200

"""
Unit tests for the frame-synchronised export pipeline.

The pipeline runs on the calling thread here, which is also the presentation
owner, so render calls execute inline and results are deterministic.
"""
from __future__ import annotations

import threading

import numpy as np
import pytest

from core.export import ExportPipeline, frame_time, total_frames_for
from core.presentation import PresentationQueue
from shared.errors import CaptureError, EncodeError, ExportPreconditionError
from shared.models import ExportJob, ExportStatus, PixelBuffer
from test.fixtures.fakes import FakeSurface, RecordingEncoder
from test.fixtures.telemetry_data import ramp_dataset


def make_renderer(surface, rendered):
    def render(index):
        rendered.append(index)
        return surface.capture()

    return render


@pytest.fixture
def pipeline():
    p = ExportPipeline(PresentationQueue())
    yield p
    p.shutdown()


class TestFrameMath:
    def test_frame_time_mapping(self):
        assert frame_time(0, 30, 5.0) == 0.0
        assert frame_time(15, 30, 5.0) == pytest.approx(0.5)
        assert frame_time(89, 30, 5.0) == pytest.approx(2.9667, abs=1e-4)
        assert frame_time(89, 30, 2.0) == 2.0

    def test_total_frames(self):
        assert total_frames_for(3.0, 30) == 90
        assert total_frames_for(0.0, 30) == 1
        assert total_frames_for(1.01, 30) == 31

    def test_non_positive_fps(self):
        with pytest.raises(ValueError):
            frame_time(0, 0, 1.0)
        with pytest.raises(ValueError):
            total_frames_for(1.0, -1)


class TestExportPipeline:
    def test_every_frame_encoded_in_order(self, pipeline):
        surface = FakeSurface(8, 6)
        encoder = RecordingEncoder()
        rendered, progress = [], []
        job = ExportJob(total_frames=90, fps=30, output_dims=(8, 6))

        result = pipeline.export(
            ramp_dataset(3.0), job, "out.mp4", make_renderer(surface, rendered), encoder, progress.append
        )

        assert result.status is ExportStatus.COMPLETED
        assert rendered == list(range(90))
        assert len(encoder.frames) == 90
        assert [int(f[0, 0, 2]) for f in encoder.frames] == list(range(90))
        assert encoder.opened == ("out.mp4", 8, 6, 30)
        assert encoder.close_calls == 1
        assert progress[-1] == 100
        assert progress == sorted(progress)

    def test_frames_converted_to_rgba(self, pipeline):
        surface = FakeSurface(2, 2, pixel_format="BGRA")
        encoder = RecordingEncoder()
        job = ExportJob(total_frames=1, fps=30, output_dims=(2, 2))
        pipeline.export(ramp_dataset(), job, "x.mp4", make_renderer(surface, []), encoder)
        assert encoder.frames[0][0, 0].tolist() == [200, 0, 0, 255]

    @pytest.mark.parametrize("k", [0, 3, 8])
    def test_cancel_after_frame_k(self, pipeline, k):
        surface = FakeSurface(4, 4)
        job = ExportJob(total_frames=10, fps=30, output_dims=(4, 4))

        def cancel_at(index):
            if index == k:
                job.request_cancel()

        encoder = RecordingEncoder(on_append=cancel_at)
        result = pipeline.export(ramp_dataset(), job, "c.mp4", make_renderer(surface, []), encoder)

        assert result.status is ExportStatus.CANCELLED
        assert len(encoder.frames) == k + 1
        assert result.frames_completed == k + 1
        assert encoder.close_calls == 1

    def test_encoder_rejection_fails_job(self, pipeline):
        encoder = RecordingEncoder(reject_at=2)
        job = ExportJob(total_frames=5, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "r.mp4", make_renderer(FakeSurface(4, 4), []), encoder)

        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, EncodeError)
        assert result.frames_completed == 2
        assert encoder.close_calls == 1

    def test_encoder_exception_fails_job(self, pipeline):
        encoder = RecordingEncoder(raise_at=0)
        job = ExportJob(total_frames=2, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "e.mp4", make_renderer(FakeSurface(4, 4), []), encoder)
        assert isinstance(result.error, EncodeError)
        assert "codec exploded" in result.message

    def test_capture_failure_fails_job(self, pipeline):
        surface = FakeSurface(4, 4)
        surface.fail_capture_at = 1
        encoder = RecordingEncoder()
        job = ExportJob(total_frames=3, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "f.mp4", make_renderer(surface, []), encoder)

        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, CaptureError)
        assert len(encoder.frames) == 1
        assert encoder.close_calls == 1

    def test_dimension_change_fails_job(self, pipeline):
        def render(index):
            size = 4 if index == 0 else 5
            return PixelBuffer(np.zeros((size, size, 4), dtype=np.uint8), "RGBA")

        job = ExportJob(total_frames=2, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "d.mp4", render, RecordingEncoder())
        assert isinstance(result.error, CaptureError)

    def test_open_failure(self, pipeline):
        encoder = RecordingEncoder(fail_open=True)
        job = ExportJob(total_frames=2, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "o.mp4", make_renderer(FakeSurface(4, 4), []), encoder)
        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, EncodeError)
        assert result.frames_completed == 0

    def test_close_failure_fails_completed_job(self, pipeline):
        encoder = RecordingEncoder(fail_close=True)
        job = ExportJob(total_frames=2, fps=30, output_dims=(4, 4))
        result = pipeline.export(ramp_dataset(), job, "z.mp4", make_renderer(FakeSurface(4, 4), []), encoder)
        assert result.status is ExportStatus.FAILED
        assert len(encoder.frames) == 2

    def test_progress_callback_errors_ignored(self, pipeline):
        def bad_progress(_):
            raise RuntimeError("ui gone")

        job = ExportJob(total_frames=2, fps=30, output_dims=(4, 4))
        result = pipeline.export(
            ramp_dataset(), job, "p.mp4", make_renderer(FakeSurface(4, 4), []), RecordingEncoder(), bad_progress
        )
        assert result.succeeded

    def test_start_requires_dataset(self, pipeline):
        job = ExportJob(total_frames=1, fps=30, output_dims=(4, 4))
        with pytest.raises(ExportPreconditionError):
            pipeline.start(None, job, "n.mp4", make_renderer(FakeSurface(4, 4), []), RecordingEncoder())

    def test_start_renders_on_presentation_thread(self):
        queue = PresentationQueue()
        pipeline = ExportPipeline(queue)
        surface = FakeSurface(4, 4)
        job = ExportJob(total_frames=4, fps=30, output_dims=(4, 4))
        try:
            future = pipeline.start(ramp_dataset(), job, "t.mp4", lambda i: surface.capture(), RecordingEncoder())
            assert queue.run_until(future.done, timeout=10.0)
        finally:
            pipeline.shutdown()
        assert future.result().succeeded
        assert set(surface.capture_threads) == {threading.current_thread().name}

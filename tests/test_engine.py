import io

import numpy as np
import pytest

from chunkshuffle.chunking import TailPolicy
from chunkshuffle.engine import EngineState, ShuffleEngine, shuffle_pcm
from chunkshuffle.errors import ChunkSizeUnderflowError, DecodeError, RandomSourceError
from chunkshuffle.pcm_format import FormatDescriptor
from chunkshuffle.volume import ConstantVolume


class RecordingSink:
    def __init__(self, fail_on_commit=False):
        self.chunks = []
        self.committed = False
        self.discarded = False
        self.fail_on_commit = fail_on_commit

    def write(self, chunk):
        self.chunks.append(bytes(chunk))

    def commit(self):
        if self.fail_on_commit:
            raise OSError("disk full")
        self.committed = True

    def discard(self):
        self.chunks = []
        self.discarded = True


class TrackingSource(io.BytesIO):
    def __init__(self, data, fail_after=None):
        super().__init__(data)
        self.fail_after = fail_after
        self.reads = 0
        self.was_closed = False

    def read(self, n=-1):
        self.reads += 1
        if self.fail_after is not None and self.reads > self.fail_after:
            raise OSError("decoder crashed")
        return super().read(n)

    def close(self):
        self.was_closed = True
        super().close()


class CountingVolume:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return 1.0


def _pieces(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


def test_end_to_end_mono_example(mono_fmt, ramp_pcm):
    engine = ShuffleEngine(mono_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    assert engine.chunk_size == 160

    sink = RecordingSink()
    report = engine.run(TrackingSource(ramp_pcm), sink)

    assert report.chunk_count == 10
    assert report.bytes_written == 1600
    assert sink.committed and not sink.discarded
    assert [len(c) for c in sink.chunks] == [160] * 10
    assert sorted(sink.chunks) == sorted(_pieces(ramp_pcm, 160))
    assert len(b"".join(sink.chunks)) == 1600


def test_shuffle_pcm_returns_same_chunks(mono_fmt, ramp_pcm):
    out = shuffle_pcm(ramp_pcm, mono_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    assert len(out) == len(ramp_pcm)
    assert sorted(_pieces(out, 160)) == sorted(_pieces(ramp_pcm, 160))


def test_identity_round_trip_without_shuffle(stereo_fmt):
    pcm = np.arange(4000, dtype="<i2").tobytes()
    engine = ShuffleEngine(stereo_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    chunks = engine.read_chunks(io.BytesIO(pcm))
    assert all(len(c) % stereo_fmt.frame_bytes == 0 for c in chunks)
    assert b"".join(chunks) == pcm


def test_volume_is_drawn_once_per_chunk(mono_fmt, ramp_pcm):
    volume = CountingVolume()
    ShuffleEngine(mono_fmt, chunk_ms=10, volume=volume).read_chunks(io.BytesIO(ramp_pcm))
    assert volume.calls == 10


def test_volume_applies_to_whole_chunk(mono_fmt):
    pcm = np.full(800, 100, dtype="<i2").tobytes()
    factors = iter([0.5, 2.0, 1.0, 3.0, 1.5, 0.7, 1.1, 1.9, 2.2, 0.6])
    engine = ShuffleEngine(mono_fmt, chunk_ms=10, volume=lambda: next(factors))
    chunks = engine.read_chunks(io.BytesIO(pcm))
    levels = [set(np.frombuffer(bytes(c), dtype="<i2").tolist()) for c in chunks]
    assert levels == [{50}, {200}, {100}, {300}, {150}, {70}, {110}, {190}, {220}, {60}]


def test_partial_final_chunk_kept_when_frame_aligned(mono_fmt):
    pcm = np.arange(850, dtype="<i2").tobytes()
    engine = ShuffleEngine(mono_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    chunks = engine.read_chunks(io.BytesIO(pcm))
    assert [len(c) for c in chunks] == [160] * 10 + [100]
    assert b"".join(chunks) == pcm


def test_tail_discard_drops_partial_frame(stereo_fmt):
    pcm = np.arange(325, dtype="<i2").tobytes()  # 650 bytes: 2 x 320 + 10
    engine = ShuffleEngine(stereo_fmt, chunk_ms=10, volume=ConstantVolume(1.0),
                           tail_policy=TailPolicy.DISCARD)
    sink = RecordingSink()
    report = engine.run(io.BytesIO(pcm), sink)

    assert report.tail_bytes_dropped == 2
    assert report.tail_bytes_padded == 0
    assert report.bytes_written == 648
    assert sorted(sink.chunks) == sorted([pcm[:320], pcm[320:640], pcm[640:648]])


def test_tail_pad_fills_partial_frame_with_silence(stereo_fmt):
    pcm = np.arange(325, dtype="<i2").tobytes()
    engine = ShuffleEngine(stereo_fmt, chunk_ms=10, volume=ConstantVolume(1.0),
                           tail_policy=TailPolicy.PAD)
    sink = RecordingSink()
    report = engine.run(io.BytesIO(pcm), sink)

    assert report.tail_bytes_padded == 2
    assert report.tail_bytes_dropped == 0
    assert report.bytes_written == 652
    assert pcm[640:] + b"\x00\x00" in sink.chunks


def test_tail_shorter_than_a_frame_is_dropped_entirely(stereo_fmt):
    pcm = np.arange(321, dtype="<i2").tobytes()  # 642 bytes
    engine = ShuffleEngine(stereo_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    report = engine.run(io.BytesIO(pcm), RecordingSink())
    assert report.chunk_count == 2
    assert report.tail_bytes_dropped == 2


def test_short_reads_are_reassembled(mono_fmt, ramp_pcm):
    class Trickle(io.BytesIO):
        def read(self, n=-1):
            return super().read(min(n, 7))

    engine = ShuffleEngine(mono_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    chunks = engine.read_chunks(Trickle(ramp_pcm))
    assert [len(c) for c in chunks] == [160] * 10


def test_empty_source(mono_fmt):
    sink = RecordingSink()
    report = ShuffleEngine(mono_fmt, chunk_ms=10).run(io.BytesIO(b""), sink)
    assert report.chunk_count == 0
    assert sink.chunks == [] and sink.committed


def test_chunk_size_underflow_is_fatal():
    fmt = FormatDescriptor(100, 8, 1)
    with pytest.raises(ChunkSizeUnderflowError):
        ShuffleEngine(fmt, chunk_ms=5)
    with pytest.raises(ChunkSizeUnderflowError):
        ShuffleEngine(FormatDescriptor(8000, 16, 1), chunk_ms=0)


def test_decode_error_leaves_no_output(mono_fmt, ramp_pcm):
    source = TrackingSource(ramp_pcm, fail_after=3)
    sink = RecordingSink()
    engine = ShuffleEngine(mono_fmt, chunk_ms=10)

    with pytest.raises(DecodeError):
        engine.run(source, sink)

    assert sink.discarded and not sink.committed
    assert sink.chunks == []
    assert source.was_closed
    assert engine.state is EngineState.DONE


def test_sink_failure_discards_output(mono_fmt, ramp_pcm):
    source = TrackingSource(ramp_pcm)
    sink = RecordingSink(fail_on_commit=True)
    with pytest.raises(OSError):
        ShuffleEngine(mono_fmt, chunk_ms=10).run(source, sink)
    assert sink.discarded
    assert source.was_closed


def test_random_source_failure_discards_output(mono_fmt, ramp_pcm):
    def broken(n):
        raise OSError("no entropy")

    sink = RecordingSink()
    with pytest.raises(RandomSourceError):
        ShuffleEngine(mono_fmt, chunk_ms=10, randbytes=broken).run(io.BytesIO(ramp_pcm), sink)
    assert sink.discarded and not sink.committed


def test_close_failure_after_commit_keeps_output(mono_fmt, ramp_pcm):
    class StuckSource(io.BytesIO):
        failed = False

        def close(self):
            if not self.failed:
                self.failed = True
                raise OSError("pipe already gone")
            super().close()

    sink = RecordingSink()
    report = ShuffleEngine(mono_fmt, chunk_ms=10).run(StuckSource(ramp_pcm), sink)

    assert sink.committed and not sink.discarded
    assert report.bytes_written == 1600


def test_state_transitions(mono_fmt, ramp_pcm):
    engine = ShuffleEngine(mono_fmt, chunk_ms=10, volume=ConstantVolume(1.0))
    seen = []

    class StateSink(RecordingSink):
        def write(self, chunk):
            seen.append(engine.state)
            super().write(chunk)

    class StateSource(io.BytesIO):
        def read(self, n=-1):
            seen.append(engine.state)
            return super().read(n)

    engine.run(StateSource(ramp_pcm), StateSink())
    assert seen[0] is EngineState.READING
    assert seen[-1] is EngineState.FINALIZING
    assert engine.state is EngineState.DONE

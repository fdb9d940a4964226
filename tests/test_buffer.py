import pytest

from ppg.buffer import Sample, SignalBuffer


def test_append_evicts_samples_outside_retention_window():
    buf = SignalBuffer(retention_ms=12_000)
    for t in range(0, 20_001, 250):
        buf.append(Sample(float(t), 1.0))
        newest = buf.samples[-1].time_ms
        assert all(newest - s.time_ms < 12_000 for s in buf.samples)

    times = [s.time_ms for s in buf.samples]
    assert times[0] == 8_250.0
    assert times[-1] == 20_000.0
    assert len(buf) == 48


def test_sample_exactly_at_cutoff_is_evicted():
    buf = SignalBuffer(retention_ms=1_000)
    buf.append(Sample(0.0, 1.0))
    buf.append(Sample(1_000.0, 2.0))
    assert [s.time_ms for s in buf.samples] == [1_000.0]


def test_out_of_order_sample_rejected():
    buf = SignalBuffer()
    buf.append(Sample(500.0, 1.0))
    with pytest.raises(ValueError):
        buf.append(Sample(250.0, 1.0))


def test_clear_empties_buffer():
    buf = SignalBuffer()
    buf.append(Sample(0.0, 1.0))
    buf.clear()
    assert len(buf) == 0
    assert buf.samples == []

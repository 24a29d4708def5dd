# pylint: disable=missing-module-docstring,missing-function-docstring
import numpy as np
import pytest

from audio.level import ActivityMeter, rms
from audio.pcm import (
    MalformedPayloadError,
    bytes_to_pcm16,
    bytes_to_text,
    float_to_pcm16,
    pcm16_to_float,
    pcm16le_to_float32,
    text_to_bytes,
)
from constants import OUTPUT_SAMPLE_RATE_HZ


# ---------------------------------------------------------------------
# float <-> PCM16
# ---------------------------------------------------------------------

def test_float_to_pcm16_scales_and_truncates():
    out = float_to_pcm16([0.0, 0.5, -0.5, 0.00002])

    assert out.dtype == np.int16
    assert out.tolist() == [0, 16384, -16384, 0]


def test_float_to_pcm16_clamps_full_scale():
    out = float_to_pcm16([1.0, -1.0, 1.5, -2.0])

    assert out.tolist() == [32767, -32768, 32767, -32768]


def test_pcm16_to_float_divides_by_32768():
    frame = pcm16_to_float([16384, -32768], sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ)

    assert frame.samples.dtype == np.float32
    assert frame.samples.tolist() == [0.5, -1.0]
    assert frame.sample_rate_hz == OUTPUT_SAMPLE_RATE_HZ
    assert frame.frame_count == 2


def test_float_round_trip_within_one_step():
    samples = np.linspace(-1.0, 1.0, 20_001, endpoint=False, dtype=np.float32)

    frame = pcm16_to_float(float_to_pcm16(samples), sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ)

    assert np.max(np.abs(frame.samples - samples)) <= 1 / 32768


def test_pcm16_to_float_stereo_reshapes():
    frame = pcm16_to_float([1, 2, 3, 4], sample_rate_hz=24_000, channel_count=2)

    assert frame.samples.shape == (2, 2)
    assert frame.frame_count == 2


def test_pcm16_to_float_rejects_partial_frame():
    with pytest.raises(MalformedPayloadError):
        pcm16_to_float([1, 2, 3], sample_rate_hz=24_000, channel_count=2)


def test_empty_buffer_has_zero_duration():
    frame = pcm16_to_float([], sample_rate_hz=24_000)

    assert frame.frame_count == 0
    assert frame.duration_s == 0.0


def test_duration_matches_sample_count():
    frame = pcm16_to_float(np.zeros(24_000, dtype=np.int16), sample_rate_hz=24_000)

    assert frame.duration_s == pytest.approx(1.0)


# ---------------------------------------------------------------------
# bytes / base64
# ---------------------------------------------------------------------

def test_bytes_to_pcm16_is_little_endian():
    assert bytes_to_pcm16(b"\x01\x00\xff\xff").tolist() == [1, -1]


def test_bytes_to_pcm16_rejects_odd_length():
    with pytest.raises(MalformedPayloadError):
        bytes_to_pcm16(b"\x00\x00\x00")


def test_base64_text_helpers():
    assert bytes_to_text(b"\x00\x01\x02") == "AAEC"
    assert text_to_bytes("AAEC") == b"\x00\x01\x02"


def test_base64_round_trip_for_any_bytes():
    rng = np.random.default_rng(7)
    payloads = [b"", bytes(range(256))] + [
        rng.integers(0, 256, size=n, dtype=np.uint8).tobytes() for n in (1, 2, 3, 1023, 4096)
    ]

    for payload in payloads:
        assert text_to_bytes(bytes_to_text(payload)) == payload


def test_text_to_bytes_rejects_garbage():
    with pytest.raises(MalformedPayloadError):
        text_to_bytes("not base64!!")


def test_pcm16le_to_float32_for_browser_blocks():
    out = pcm16le_to_float32(b"\x00\x40\x00\xc0")

    assert out.dtype == np.float32
    assert out.tolist() == [0.5, -0.5]


# ---------------------------------------------------------------------
# Activity meter
# ---------------------------------------------------------------------

def test_rms_of_constant_block():
    assert rms(np.full(100, 0.5, dtype=np.float32)) == pytest.approx(0.5)
    assert rms(np.zeros(0, dtype=np.float32)) == 0.0
    assert rms(np.zeros(4096, dtype=np.float32)) == 0.0


def test_silent_block_is_not_listening():
    meter = ActivityMeter(threshold=0.01)

    assert meter.observe(np.zeros(4096, dtype=np.float32)) is False
    assert meter.listening is False


def test_meter_reports_only_flips():
    meter = ActivityMeter(threshold=0.01)
    loud = np.full(256, 0.2, dtype=np.float32)
    quiet = np.zeros(256, dtype=np.float32)

    assert meter.observe(loud) is True
    assert meter.listening is True
    assert meter.observe(loud) is False
    assert meter.observe(quiet) is True
    assert meter.listening is False


def test_meter_threshold_is_strict():
    meter = ActivityMeter(threshold=0.5)

    assert meter.observe(np.full(16, 0.5, dtype=np.float32)) is False
    assert meter.listening is False

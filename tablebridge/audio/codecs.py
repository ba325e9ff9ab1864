"""G.711 mu-law codec for TableBridge.

The telephony leg carries 8 kHz mu-law; the agent leg carries 16-bit linear
PCM (little-endian). Both directions go through pre-computed lookup tables
so per-frame work is one table index per sample.
"""

from __future__ import annotations

import base64
import struct

# ---------------------------------------------------------------------------
# G.711 mu-law constants
# ---------------------------------------------------------------------------

_MULAW_BIAS = 0x84
_MULAW_CLIP = 32635

# Linear magnitude at the start of each segment: (0x84 << exponent) - 0x84
_MULAW_EXP_LUT = (0, 132, 396, 924, 1980, 4092, 8316, 16764)


def ulaw_to_linear(ulaw_byte: int) -> int:
    """Decode a single mu-law byte to a signed 16-bit linear sample."""
    ulaw_byte = ~ulaw_byte & 0xFF
    sign = ulaw_byte & 0x80
    exponent = (ulaw_byte >> 4) & 0x07
    mantissa = ulaw_byte & 0x0F
    sample = _MULAW_EXP_LUT[exponent] + (mantissa << (exponent + 3))
    return -sample if sign else sample


def linear_to_ulaw(sample: int) -> int:
    """Encode a single signed 16-bit linear sample to a mu-law byte.

    Magnitudes above the clip ceiling saturate to the ceiling's code.
    """
    if sample < 0:
        sign = 0x80
        sample = -sample
    else:
        sign = 0

    if sample > _MULAW_CLIP:
        sample = _MULAW_CLIP
    sample += _MULAW_BIAS

    # Highest set bit picks the segment
    exponent = 7
    exp_mask = 0x4000
    while exponent > 0 and not (sample & exp_mask):
        exponent -= 1
        exp_mask >>= 1

    mantissa = (sample >> (exponent + 3)) & 0x0F
    return ~(sign | (exponent << 4) | mantissa) & 0xFF


# mu-law byte -> PCM16 sample
_MULAW_DECODE_TABLE: list[int] = [ulaw_to_linear(_b) for _b in range(256)]

# 16-bit unsigned index -> mu-law byte
_MULAW_ENCODE_TABLE: bytes = bytes(
    linear_to_ulaw(_i if _i < 32768 else _i - 65536) for _i in range(65536)
)


def mulaw_decode(data: bytes) -> bytes:
    """Decode mu-law bytes to PCM16 little-endian bytes."""
    samples = [_MULAW_DECODE_TABLE[b] for b in data]
    return struct.pack(f"<{len(samples)}h", *samples)


def mulaw_encode(data: bytes) -> bytes:
    """Encode PCM16 little-endian bytes to mu-law bytes.

    A trailing odd byte is ignored; callers that stream PCM in arbitrary
    chunks should carry it over themselves (see :class:`Resampler`).
    """
    n_samples = len(data) // 2
    samples = struct.unpack_from(f"<{n_samples}h", data)
    return bytes(_MULAW_ENCODE_TABLE[s & 0xFFFF] for s in samples)


# ---------------------------------------------------------------------------
# Base64 helpers for the JSON wire formats
# ---------------------------------------------------------------------------


def mulaw_b64_to_pcm16(payload_b64: str) -> bytes:
    """Telephony media payload (base64 mu-law) -> PCM16 bytes."""
    return mulaw_decode(base64.b64decode(payload_b64, validate=True))


def pcm16_to_mulaw_b64(pcm: bytes) -> str:
    """PCM16 bytes -> base64 mu-law suitable for a telephony media payload."""
    return base64.b64encode(mulaw_encode(pcm)).decode("ascii")

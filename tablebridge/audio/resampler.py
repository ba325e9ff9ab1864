"""Fixed-ratio sample rate conversion for TableBridge.

The agent speaks PCM16 at a multiple of the 8 kHz telephony rate (24 kHz by
default). Downsampling keeps every Nth sample and upsampling repeats each
sample N times. There is no anti-alias filtering: the conversion is tuned
for latency, not fidelity, and always produces exactly ``len/ratio``
(or ``len*ratio``) samples so the outbound frame rate stays fixed.

All audio is PCM16 little-endian mono.
"""

from __future__ import annotations

import struct


def decimate(data: bytes, ratio: int) -> bytes:
    """Keep every ``ratio``-th sample of a PCM16 buffer."""
    if ratio < 1:
        raise ValueError(f"Decimation ratio must be >= 1, got {ratio}")
    n_samples = len(data) // 2
    if ratio == 1 or n_samples == 0:
        return data[: n_samples * 2]
    samples = struct.unpack_from(f"<{n_samples}h", data)[::ratio]
    return struct.pack(f"<{len(samples)}h", *samples)


def upsample(data: bytes, ratio: int) -> bytes:
    """Repeat each PCM16 sample ``ratio`` times."""
    if ratio < 1:
        raise ValueError(f"Upsampling ratio must be >= 1, got {ratio}")
    n_samples = len(data) // 2
    if ratio == 1 or n_samples == 0:
        return data[: n_samples * 2]
    out = bytearray()
    for i in range(n_samples):
        out += data[i * 2 : i * 2 + 2] * ratio
    return bytes(out)


def integer_ratio(from_rate: int, to_rate: int) -> int:
    """Return the integer factor between two rates, or raise ValueError."""
    high, low = max(from_rate, to_rate), min(from_rate, to_rate)
    if low <= 0 or high % low:
        raise ValueError(
            f"Unsupported rate conversion {from_rate} -> {to_rate}: "
            f"rates must be integer multiples of each other"
        )
    return high // low


class Resampler:
    """Stateful fixed-ratio resampler for a stream of PCM16 chunks.

    Agent audio deltas arrive in arbitrary sizes, so two bits of state are
    carried between calls to :meth:`process`:

    * a trailing odd byte (half a sample), and
    * the stride phase, so decimation keeps every Nth sample of the whole
      stream rather than of each chunk.

    Usage:
        resampler = Resampler(from_rate=24000, to_rate=8000)
        pcm_8k = resampler.process(pcm_24k_chunk)
    """

    def __init__(self, from_rate: int, to_rate: int) -> None:
        self.from_rate = from_rate
        self.to_rate = to_rate
        self.ratio = integer_ratio(from_rate, to_rate)
        self._carry = b""
        self._phase = 0

    @property
    def needs_resample(self) -> bool:
        """Whether this resampler actually changes the sample rate."""
        return self.from_rate != self.to_rate

    def process(self, data: bytes) -> bytes:
        """Resample a chunk of PCM16 audio."""
        if self._carry:
            data = self._carry + data
            self._carry = b""
        if len(data) % 2:
            self._carry = data[-1:]
            data = data[:-1]

        if not self.needs_resample:
            return data
        if self.to_rate > self.from_rate:
            return upsample(data, self.ratio)

        n_samples = len(data) // 2
        out = decimate(data[self._phase * 2 :], self.ratio)
        self._phase = (self._phase - n_samples) % self.ratio
        return out

    def reset(self) -> None:
        """Drop carried state, e.g. when a new agent turn starts."""
        self._carry = b""
        self._phase = 0

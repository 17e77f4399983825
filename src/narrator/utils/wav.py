"""
WAV container encoding for raw PCM.

The speech model returns headerless little-endian PCM. encode_wav() prepends
the canonical 44-byte RIFF/WAVE header so browsers and players can open it;
parse_wav() reads such a file back (used by tests and ``narrator --inspect``).

Header layout (all integers little-endian):
    0   "RIFF"
    4   36 + data size
    8   "WAVE"
    12  "fmt "
    16  16 (fmt chunk size)
    20  1 (PCM)
    22  channels
    24  sample rate
    28  byte rate
    32  block align
    34  bits per sample
    36  "data"
    40  data size
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

WAV_HEADER_SIZE = 44

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavInfo:
    """Format fields and payload of a parsed WAV file."""
    sample_rate: int
    channels: int
    bits_per_sample: int
    pcm: bytes

    @property
    def duration_s(self) -> float:
        frame_size = self.channels * (self.bits_per_sample // 8)
        if frame_size == 0 or self.sample_rate == 0:
            return 0.0
        return len(self.pcm) / frame_size / self.sample_rate


def encode_wav(pcm: bytes, sample_rate: int, channels: int, bits_per_sample: int = 16) -> bytes:
    """
    Wrap raw PCM bytes in a WAV container.

    Args:
        pcm: Little-endian PCM samples, copied unmodified.
        sample_rate: Samples per second.
        channels: Channel count.
        bits_per_sample: Sample width in bits.

    Returns:
        Header plus payload, 44 + len(pcm) bytes.
    """
    bytes_per_sample = bits_per_sample // 8
    header = _HEADER.pack(
        b"RIFF",
        36 + len(pcm),
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        sample_rate * channels * bytes_per_sample,
        channels * bytes_per_sample,
        bits_per_sample,
        b"data",
        len(pcm),
    )
    return header + bytes(pcm)


def parse_wav(data: bytes) -> WavInfo:
    """
    Parse a canonical 44-byte-header WAV file.

    Raises:
        ValueError: If the header is truncated or not PCM RIFF/WAVE.
    """
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")

    (riff, riff_size, wave, fmt, fmt_size, audio_format, channels, sample_rate,
     _byte_rate, _block_align, bits_per_sample, data_id, data_size) = _HEADER.unpack_from(data)

    if riff != b"RIFF" or wave != b"WAVE":
        raise ValueError("not a RIFF/WAVE file")
    if fmt != b"fmt " or fmt_size != 16 or audio_format != 1:
        raise ValueError("unsupported WAV format chunk (expected 16-byte PCM fmt)")
    if data_id != b"data":
        raise ValueError("missing data chunk")
    if data_size > len(data) - WAV_HEADER_SIZE:
        raise ValueError(
            f"data chunk truncated: header says {data_size}, have {len(data) - WAV_HEADER_SIZE}"
        )
    if riff_size != 36 + data_size:
        raise ValueError(f"RIFF size mismatch: {riff_size} != {36 + data_size}")

    pcm = bytes(data[WAV_HEADER_SIZE:WAV_HEADER_SIZE + data_size])
    return WavInfo(
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits_per_sample,
        pcm=pcm,
    )

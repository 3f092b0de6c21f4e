"""Monochrome mouse cursors built from small XPM images.

The XPM is a list of strings: a header holding width and height, three
colour lines, one line per pixel row, and a final "x,y" hotspot line.
In the pixel rows 'X' is black, '.' is white and anything else transparent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Sequence

_HEADER = re.compile(r"\s*(\d+)\s+(\d+)")
_HOTSPOT = re.compile(r"\s*(-?\d+)\s*,\s*(-?\d+)")
_COLOR_LINES = 3


@dataclass(frozen=True)
class Cursor:
    """Cursor bitmap: one bit per pixel, most significant bit first."""

    size: tuple[int, int]
    hotspot: tuple[int, int]
    data: bytes
    mask: bytes

    def to_pygame(self) -> Any:
        """Build the matching pygame cursor."""
        import pygame

        return pygame.cursors.Cursor(self.size, self.hotspot, self.data, self.mask)


def _pack(chunk: str) -> tuple[int, int]:
    data = mask = 0
    for ch in chunk:
        data = (data << 1) | (ch == "X")
        mask = (mask << 1) | (ch in "X.")
    return data, mask


def cursor_from_xpm(xpm: Sequence[str]) -> Cursor:
    """Parse an XPM cursor; raises ValueError when it is malformed."""
    lines = list(xpm)
    if not lines:
        raise ValueError("Empty XPM")
    header = _HEADER.match(lines[0])
    if header is None:
        raise ValueError(f"Invalid XPM header: {lines[0]!r}")
    width, height = int(header.group(1)), int(header.group(2))
    if width <= 0 or height <= 0 or width % 8:
        raise ValueError("Cursor width must be a positive multiple of 8")

    first = 1 + _COLOR_LINES
    rows = lines[first:first + height]
    if len(rows) < height:
        raise ValueError("XPM has fewer pixel rows than its height")
    if len(lines) <= first + height:
        raise ValueError("XPM has no hotspot line")

    data = bytearray()
    mask = bytearray()
    for row in rows:
        if len(row) < width:
            raise ValueError(f"XPM row shorter than the width: {row!r}")
        for start in range(0, width, 8):
            d, m = _pack(row[start:start + 8])
            data.append(d)
            mask.append(m)

    hotspot = _HOTSPOT.match(lines[first + height])
    if hotspot is None:
        raise ValueError(f"Invalid XPM hotspot: {lines[first + height]!r}")

    return Cursor(
        size=(width, height),
        hotspot=(int(hotspot.group(1)), int(hotspot.group(2))),
        data=bytes(data),
        mask=bytes(mask),
    )
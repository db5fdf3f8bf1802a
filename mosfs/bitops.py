"""Bit mask and logarithm helpers."""

BITS_PER_LONG = 32
BITS_PER_LONG_LONG = 64


def _mask(h, l, width):
    if not (0 <= l < width and 0 <= h < width):
        raise ValueError(f"bit positions must lie in 0..{width - 1}")
    full = (1 << width) - 1
    return ((full << l) & full) & (full >> (width - 1 - h))


def genmask(h, l):
    """Return a 32-bit mask with bits ``l`` through ``h`` set."""
    return _mask(h, l, BITS_PER_LONG)


def genmask_ull(h, l):
    """Return a 64-bit mask with bits ``l`` through ``h`` set."""
    return _mask(h, l, BITS_PER_LONG_LONG)


def log2(n):
    """Return floor(log2(n)) for a 32-bit value; 0 for n < 2, at most 31."""
    if n < 0:
        raise ValueError("log2 of a negative number")
    if n < 2:
        return 0
    return min(n.bit_length() - 1, BITS_PER_LONG - 1)
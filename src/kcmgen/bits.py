r"""Bit-vector helpers shared by the KCM components.

Bit vectors are plain Amaranth :class:`~amaranth:amaranth.hdl.Value`\ s:
LSB-first, with an explicit length given by :func:`len`. Whether a vector is
signed or unsigned is a property of the operation applied to it (e.g.
:func:`sign_extend` vs :func:`zero_extend`), not of the vector.
"""

from amaranth import Cat, C, signed, unsigned


def _signed_bits(x):
    return (x if x >= 0 else ~x).bit_length() + 1


def min_shape(lo, hi):
    """Find the narrowest shape that holds every integer in ``lo..hi``.

    Parameters
    ----------
    lo : int
        Smallest value to represent.
    hi : int
        Largest value to represent.

    Returns
    -------
    :class:`amaranth:amaranth.hdl.Shape`
        An unsigned shape when ``lo >= 0``, otherwise a signed shape. The
        shape is never narrower than one bit, even when ``lo == hi == 0``.
    """
    if lo > hi:
        raise ValueError(f"empty range {lo}..{hi}")

    if lo < 0:
        return signed(max(_signed_bits(lo), _signed_bits(hi)))
    return unsigned(max(hi.bit_length(), 1))


def to_signed(x, width):
    """Reinterpret the low ``width`` bits of ``x`` as two's complement."""
    x &= (1 << width) - 1
    if width and x >> (width - 1):
        return x - (1 << width)
    return x


def group_widths(width, size=4):
    """Widths of the LSB-first groups :func:`split` would produce."""
    if width <= 0:
        return []

    (full, rest) = divmod(width, size)
    return [size]*full + ([rest] if rest else [])


def split(value, size=4):
    """Slice ``value`` into LSB-first groups of ``size`` bits.

    The final (most-significant) group is narrower than ``size`` when
    ``len(value)`` is not a multiple of ``size``.
    """
    groups = []
    lsb = 0
    for w in group_widths(len(value), size):
        groups.append(value[lsb:lsb + w])
        lsb += w

    return groups


def _check_pad(value, width):
    if width < len(value):
        raise ValueError(f"cannot pad a {len(value)}-bit value to {width} "
                         "bits")


def zero_extend(value, width):
    """Pad ``value`` with zero bits up to ``width`` bits."""
    _check_pad(value, width)
    return Cat(value, C(0, width - len(value)))


def sign_extend(value, width):
    """Pad ``value`` with copies of its top bit up to ``width`` bits."""
    _check_pad(value, width)
    if len(value) == 0:
        return C(0, width)
    return Cat(value, value[-1].replicate(width - len(value)))

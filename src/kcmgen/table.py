"""Sub-word multipliers built from constant lookup tables."""

from amaranth import Module
from amaranth.lib.memory import Memory
from amaranth.lib.wiring import In, Out, Component

from .bits import min_shape, to_signed
from .errors import InvalidGroupWidth


#: Every table is a 4-address-bit ROM, regardless of the group width.
TABLE_DEPTH = 16
MAX_GROUP_WIDTH = 4


def _check_width(width):
    if not isinstance(width, int):
        raise TypeError(f"group width must be an int, not {width!r}")
    if not 1 <= width <= MAX_GROUP_WIDTH:
        raise InvalidGroupWidth(f"group width must be between 1 and "
                                f"{MAX_GROUP_WIDTH}, not {width}")


def _addresses(width, signed):
    if signed:
        return [to_signed(x, width) for x in range(2**width)]
    return list(range(2**width))


def subword_products(coefficient, width=4, signed=False):
    """Compute the contents of a sub-word multiplier table.

    Parameters
    ----------
    coefficient : int
        The constant each address is multiplied by.
    width : int
        Width in bits of the group addressing the table, between 1 and 4.
    signed : bool
        Interpret addresses as two's complement numbers of ``width`` bits,
        i.e. the group is the sign-extended top group of a signed operand.

    Returns
    -------
    list of int
        ``TABLE_DEPTH`` entries. Entry ``x`` is ``coefficient * x`` for every
        address a ``width``-bit group can produce; the remaining entries are
        unreachable and set to zero.

    Raises
    ------
    InvalidGroupWidth
        If ``width`` is outside ``1..4``.
    """
    _check_width(width)
    products = [coefficient*x for x in _addresses(width, signed)]
    return products + [0]*(TABLE_DEPTH - len(products))


def product_shape(coefficient, width=4, signed=False):
    """Narrowest shape holding every product of a sub-word table.

    Arguments are the same as :func:`subword_products`. The shape is signed
    whenever a product can be negative.
    """
    _check_width(width)
    products = [coefficient*x for x in _addresses(width, signed)]
    return min_shape(min(products), max(products))


class SubwordMul(Component):  # noqa: DOC602,DOC603
    r"""Multiply a group of up to 4 bits by a constant.

    The products are stored verbatim in a ROM with an asynchronous read
    port, so that synthesis maps the table contents directly into LUTs
    rather than re-deriving (and possibly re-optimizing) multiplier logic.

    Parameters
    ----------
    coefficient : int
        The constant multiplier.
    width : int
        Width in bits of input ``a``, between 1 and 4. Narrower groups are
        zero-extended to form a 4-bit ROM address.
    signed : bool
        Treat ``a`` as a two's complement number.

    Attributes
    ----------
    latency : int
        Clock cycles between ``a`` and ``o``; always 0.
    products : list of int
        Contents of the ROM, see :func:`subword_products`.
    shape : :class:`amaranth:amaranth.hdl.Shape`
        Shape of the output ``o``, see :func:`product_shape`.
    a : In(width)
        Group of operand bits used as the table address.
    o : Out(shape)
        The product ``coefficient * a``.
    """

    latency = 0

    def __init__(self, coefficient, width=4, signed=False):
        self.products = subword_products(coefficient, width, signed)
        self.shape = product_shape(coefficient, width, signed)
        self.coefficient = coefficient
        self.width = width
        self.signed = signed
        super().__init__(self._members())

    def _members(self):
        return {
            "a": In(self.width),
            "o": Out(self.shape)
        }

    def elaborate(self, platform):  # noqa: D102
        m = Module()

        m.submodules.rom = rom = Memory(shape=self.shape, depth=TABLE_DEPTH,
                                        init=self.products)
        rd = rom.read_port(domain="comb")

        m.d.comb += [
            rd.addr.eq(self.a),
            self.o.eq(rd.data)
        ]

        return m


class PipelinedSubwordMul(SubwordMul):  # noqa: DOC602,DOC603
    """Registered version of :class:`SubwordMul`.

    The ROM's read port is synchronous: ``o`` shows the product of the ``a``
    sampled at the previous active clock edge on which ``ce`` was asserted.

    Attributes
    ----------
    latency : int
        Always 1.
    ce : In(1)
        Clock enable. While deasserted, ``o`` holds its value.
    """

    latency = 1

    def _members(self):
        return {
            **super()._members(),
            "ce": In(1, init=1)
        }

    def elaborate(self, platform):  # noqa: D102
        m = Module()

        m.submodules.rom = rom = Memory(shape=self.shape, depth=TABLE_DEPTH,
                                        init=self.products)
        rd = rom.read_port(domain="sync")

        m.d.comb += [
            rd.addr.eq(self.a),
            rd.en.eq(self.ce),
            self.o.eq(rd.data)
        ]

        return m


def table_mul(m, coefficient, group, signed=False):
    """Multiply ``group`` by ``coefficient`` with a :class:`SubwordMul`.

    This is the combinational multiplier strategy for
    :func:`kcmgen.kcm.compose`. The multiplier is added to ``m`` as an
    anonymous submodule and returned.
    """
    mul = SubwordMul(coefficient, len(group), signed)
    m.submodules += mul
    m.d.comb += mul.a.eq(group)
    return mul


class PipelinedTableMul:
    """Registered multiplier strategy for :func:`kcmgen.kcm.compose`.

    Same as :func:`table_mul`, except a :class:`PipelinedSubwordMul` driven
    by clock enable ``ce`` is instantiated.
    """

    def __init__(self, ce):
        self.ce = ce

    def __call__(self, m, coefficient, group, signed=False):
        mul = PipelinedSubwordMul(coefficient, len(group), signed)
        m.submodules += mul
        m.d.comb += [
            mul.a.eq(group),
            mul.ce.eq(self.ce)
        ]
        return mul

"""Constant-coefficient multiplier components."""

from functools import partial

from amaranth import Module, Signal, signed, unsigned
from amaranth.lib.wiring import In, Out, Component
from amaranth.utils import ceil_log2

from .bits import group_widths, min_shape, sign_extend, split, zero_extend
from .errors import EmptyOperand, UnbalancedPipeline, WidthMismatch
from .table import (MAX_GROUP_WIDTH, PipelinedSubwordMul, PipelinedTableMul,
                    product_shape, subword_products, table_mul)
from .tree import adder_tree
from .weighted import PipelinedWeightedAdd, Weighted


GROUP_WIDTH = MAX_GROUP_WIDTH


def _check_params(coefficient, width):
    if not isinstance(coefficient, int):
        raise TypeError(f"coefficient must be an int, not {coefficient!r}")
    if not isinstance(width, int):
        raise TypeError(f"operand width must be an int, not {width!r}")
    if width <= 0:
        raise EmptyOperand(f"operand width must be positive, not {width}")


def kcm_shape(coefficient, width, signed=False):
    """Shape of the product of a ``width``-bit operand and ``coefficient``.

    Parameters
    ----------
    coefficient : int
        The constant multiplier.
    width : int
        Width in bits of the operand. For signed operands, this includes the
        sign bit.
    signed : bool
        Whether the operand is signed.

    Returns
    -------
    :class:`amaranth:amaranth.hdl.Shape`
        The narrowest shape holding every possible product. It is signed
        whenever a product can be negative, which is the case for a negative
        ``coefficient`` even with an unsigned operand.
    """
    _check_params(coefficient, width)

    if signed:
        (lo, hi) = (-2**(width - 1), 2**(width - 1) - 1)
    else:
        (lo, hi) = (0, 2**width - 1)

    extremes = (coefficient*lo, coefficient*hi)
    return min_shape(min(extremes), max(extremes))


def compose(m, a, coefficient, signed, multiplier, tree, *, debug=False):
    r"""Build a constant-coefficient multiplier out of injected primitives.

    ``a`` is split into 4-bit groups starting from the LSB. Each group is
    extended to 4 bits (sign-extended for the top group of a ``signed``
    operand, zero-extended otherwise) and multiplied by ``coefficient`` with
    its own sub-word ``multiplier``. Partial product ``i`` has weight
    :math:`4i`. The weighted partial products are then summed by ``tree``.

    Before being summed, every partial product is sign- or zero-extended so
    that it ends at the same bit position as all the others, high enough to
    hold the final product. This is what allows the adders in ``tree`` to
    drop their carry out without ever losing product bits.

    Parameters
    ----------
    m : :class:`amaranth:amaranth.hdl.Module`
        Module the multiplier is built in.
    a : :class:`amaranth:amaranth.hdl.Value`
        The dynamic operand.
    coefficient : int
        The constant multiplier.
    signed : bool
        Whether ``a`` is a two's complement number.
    multiplier : callable
        ``multiplier(m, coefficient, group, signed)`` instantiates a
        sub-word multiplier for a 4-bit ``group``, e.g.
        :func:`~kcmgen.table.table_mul`. It returns an object with the
        product as attribute ``o`` and its register stage count as attribute
        ``latency``.
    tree : callable
        ``tree(m, items)`` sums a list of :class:`~kcmgen.weighted.Weighted`,
        e.g. :func:`~kcmgen.tree.adder_tree`.
    debug : bool
        Add named probe signals for the partial products and their sum.

    Returns
    -------
    :class:`~kcmgen.weighted.Weighted`
        The product, with weight 0 and the width of :func:`kcm_shape`.

    Raises
    ------
    EmptyOperand
        If ``a`` has no bits.
    WidthMismatch
        If ``multiplier`` or ``tree`` return a value with an unexpected
        width or weight.
    """
    _check_params(coefficient, len(a))
    shape = kcm_shape(coefficient, len(a), signed)
    groups = split(a, GROUP_WIDTH)

    partials = []
    for i, group in enumerate(groups):
        top_signed = signed and i == len(groups) - 1
        if top_signed:
            group = sign_extend(group, GROUP_WIDTH)
        else:
            group = zero_extend(group, GROUP_WIDTH)

        mul = multiplier(m, coefficient, group, top_signed)
        pp_shape = product_shape(coefficient, GROUP_WIDTH, top_signed)
        if len(mul.o) != pp_shape.width:
            raise WidthMismatch(f"multiplier for group {i} returned a "
                                f"{len(mul.o)}-bit product, expected "
                                f"{pp_shape.width} bits")

        if debug:
            probe = Signal(pp_shape, name=f"pp{i}")
            m.d.comb += probe.eq(mul.o)

        partials.append((GROUP_WIDTH*i, mul, pp_shape))

    tree_width = max([shape.width] +
                     [weight + len(mul.o) for (weight, mul, _) in partials])

    leaves = []
    for (weight, mul, pp_shape) in partials:
        extend = sign_extend if pp_shape.signed else zero_extend
        leaves.append(Weighted(weight, extend(mul.o, tree_width - weight),
                               mul.latency))

    total = tree(m, leaves)
    if total.weight != 0 or len(total) != tree_width:
        raise WidthMismatch(f"adder tree returned {total!r}, expected weight "
                            f"0 and width {tree_width}")

    if debug:
        probe = Signal(tree_width, name="sum")
        m.d.comb += probe.eq(total.value)

    return Weighted(0, total.value[:shape.width], total.latency)


class KCM(Component):  # noqa: DOC602,DOC603
    r"""Combinational constant-coefficient multiplier.

    Computes :math:`a * K` for a constant :math:`K` chosen when the
    component is created, using one lookup table per 4 bits of ``a`` and a
    balanced tree of adders over the tables' outputs.

    * Latency: 0 clock cycles; ``o`` is a combinational function of ``a``.

    Parameters
    ----------
    coefficient : int
        The constant :math:`K`. May be negative.
    width : int
        Width in bits of input ``a``. For signed operands, this includes the
        sign bit.
    signed : bool
        Treat ``a`` as a two's complement number.
    debug : bool, optional
        Enable debugging signals.

    Attributes
    ----------
    shape : :class:`amaranth:amaranth.hdl.Shape`
        Shape of ``o``, see :func:`kcm_shape`. It is exactly wide enough for
        every product.
    groups : list of int
        Widths of the groups ``a`` is split into, LSB first.
    tables : list of list of int
        Contents of the lookup table of each group.
    latency : int
        Clock cycles between ``a`` and ``o``.
    a : In(width)
        The multiplicand.
    o : Out(shape)
        The product :math:`a * K`.

    Raises
    ------
    EmptyOperand
        If ``width`` is not positive.

    Notes
    -----
    * Each table holds :math:`K * x` for the 16 possible values :math:`x` of
      a 4-bit group; the table of the top group of a signed operand holds
      :math:`K * x` for :math:`x` from -8 to 7. Tables are stored verbatim in
      ROMs, so that synthesis maps them directly onto 4-input LUTs.

    * Table outputs are summed by a balanced tree of
      :class:`~kcmgen.weighted.WeightedAdder`\s. The low bits of the lighter
      operand of each adder bypass it, so the bottom 4 bits of the product
      come straight out of the first table.
    """

    def __init__(self, coefficient, width, signed=False, *, debug=False):
        _check_params(coefficient, width)

        self.coefficient = coefficient
        self.width = width
        self.signed = signed
        self.debug = debug

        self.shape = kcm_shape(coefficient, width, signed)
        self.groups = group_widths(width, GROUP_WIDTH)
        self.tables = [
            subword_products(coefficient, GROUP_WIDTH,
                             signed and i == len(self.groups) - 1)
            for i in range(len(self.groups))
        ]
        self.latency = self._latency()

        super().__init__(self._members())

    def _members(self):
        if self.signed:
            a_shape = signed(self.width)
        else:
            a_shape = unsigned(self.width)

        return {
            "a": In(a_shape),
            "o": Out(self.shape)
        }

    def _latency(self):
        return 0

    def _primitives(self):
        return (table_mul, adder_tree)

    def elaborate(self, platform):  # noqa: D102
        m = Module()

        (multiplier, tree) = self._primitives()
        product = compose(m, self.a, self.coefficient, self.signed,
                          multiplier, tree, debug=self.debug)

        if product.latency != self.latency:
            raise UnbalancedPipeline(f"product arrives after "
                                     f"{product.latency} cycles, expected "
                                     f"{self.latency}")

        m.d.comb += self.o.eq(product.value)

        return m


class PipelinedKCM(KCM):  # noqa: DOC602,DOC603
    r"""Pipelined constant-coefficient multiplier.

    Same structure as :class:`KCM`, except every lookup table and every
    adder latches its output in the ``sync`` domain. Where the adder tree is
    unbalanced (the number of groups is not a power of two), the shallower
    operand is delayed so that all partial products of a given ``a`` meet at
    each adder on the same clock cycle.

    * A new multiply starts on every active clock edge on which ``ce`` is
      asserted.

    * Latency: The product of ``a`` is available on ``o`` ``latency`` clock
      cycles (with ``ce`` asserted) after ``a`` was sampled, where
      ``latency`` is :math:`1 + \lceil \log_2 g \rceil` for :math:`g` groups.
      Before then, ``o`` shows the product of the previous inputs (0 out of
      reset).

    * Throughput: One multiply per clock cycle.

    Attributes
    ----------
    ce : In(1)
        Clock enable for every register stage. While deasserted, the
        whole pipeline holds its state.
    """

    def _members(self):
        return {
            **super()._members(),
            "ce": In(1, init=1)
        }

    def _latency(self):
        return PipelinedSubwordMul.latency + \
            PipelinedWeightedAdd.latency*ceil_log2(len(self.groups))

    def _primitives(self):
        return (PipelinedTableMul(self.ce),
                partial(adder_tree, adder=PipelinedWeightedAdd(self.ce)))


def make_kcm(coefficient, width, signed=False, pipelined=False, **kwargs):
    """Create a :class:`KCM` or, if ``pipelined``, a :class:`PipelinedKCM`.

    Remaining keyword arguments are passed to the component.
    """
    if pipelined:
        return PipelinedKCM(coefficient, width, signed, **kwargs)
    return KCM(coefficient, width, signed, **kwargs)

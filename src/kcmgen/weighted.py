"""Weighted numbers and the adders that combine them.

A weighted number pairs a bit vector with the binary significance of its LSB
(its "weight"): ``Weighted(4, v)`` represents ``v * 2**4``. Weights, like the
register-stage count a weighted number also carries, only exist while a
design is elaborated; the hardware only ever sees the vector.
"""

from amaranth import Cat, Module, Signal
from amaranth.lib.wiring import In, Out, Component

from .bits import zero_extend
from .errors import UnbalancedPipeline


class Weighted:
    """Elaboration-time pairing of a bit vector with its weight.

    Parameters
    ----------
    weight : int
        Power of two by which ``value``'s LSB is scaled.
    value : :class:`amaranth:amaranth.hdl.Value`
        The bit vector. It is read as an unsigned number.
    latency : int
        Number of register stages ``value`` went through since the inputs of
        the enclosing design.
    """

    __slots__ = ("weight", "value", "latency")

    def __init__(self, weight, value, latency=0):
        self.weight = weight
        self.value = value
        self.latency = latency

    def __len__(self):
        return len(self.value)

    def __repr__(self):
        return (f"Weighted(weight={self.weight}, width={len(self)}, "
                f"latency={self.latency})")


def combined_width(shift, a_width, b_width):
    """Width of the sum of a heavier ``a`` and a lighter ``b``.

    ``shift`` is the difference of the operands' weights. The low ``shift``
    bits come from ``b`` verbatim, the rest is the overlap sum, which is not
    allowed to grow past its widest operand.
    """
    return shift + max(a_width, b_width - shift, 0)


def _weighted_sum(a, b, shift, width):
    lower = zero_extend(b[:shift], shift)
    upper = b[shift:]
    part_sum = (a + upper)[:width - shift]
    return Cat(lower, part_sum)


class WeightedAdder(Component):  # noqa: DOC602,DOC603
    r"""Add two weighted numbers without growing the result.

    ``a`` is the heavier operand: its weight is ``shift`` more than ``b``'s.
    The sum has ``b``'s weight. The bottom ``shift`` bits of ``b`` pass
    through untouched; the remaining bits of ``b`` are added to ``a``, and
    any carry out of the wider of the two is dropped.

    Dropping the carry is only exact when the caller sizes the operands so
    the sum cannot overflow them. :func:`kcmgen.kcm.compose` does so by
    extending every partial product up to the width of the final product.

    Parameters
    ----------
    shift : int
        Weight of ``a`` minus weight of ``b``. Must not be negative.
    a_width : int
        Width in bits of ``a``.
    b_width : int
        Width in bits of ``b``.

    Attributes
    ----------
    latency : int
        Always 0.
    width : int
        Width of ``o``, see :func:`combined_width`.
    a : In(a_width)
        Heavier addend.
    b : In(b_width)
        Lighter addend.
    o : Out(width)
        ``(a << shift) + b``, truncated to ``width`` bits.
    """

    latency = 0

    def __init__(self, shift, a_width, b_width):
        if shift < 0:
            raise ValueError(f"shift must not be negative, not {shift}")

        self.shift = shift
        self.a_width = a_width
        self.b_width = b_width
        self.width = combined_width(shift, a_width, b_width)
        super().__init__(self._members())

    def _members(self):
        return {
            "a": In(self.a_width),
            "b": In(self.b_width),
            "o": Out(self.width)
        }

    def elaborate(self, platform):  # noqa: D102
        m = Module()

        m.d.comb += self.o.eq(_weighted_sum(self.a, self.b, self.shift,
                                            self.width))

        return m


class PipelinedWeightedAdder(WeightedAdder):  # noqa: DOC602,DOC603
    """Registered version of :class:`WeightedAdder`.

    The entire output, including the bits of ``b`` that bypass the adder,
    is latched so that ``o`` stays aligned to a single clock cycle.

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

        with m.If(self.ce):
            m.d.sync += self.o.eq(_weighted_sum(self.a, self.b, self.shift,
                                                self.width))

        return m


class Delay(Component):  # noqa: DOC602,DOC603
    """Clock-enabled shift register delaying ``inp`` by ``cycles`` cycles.

    Attributes
    ----------
    inp : In(width)
    ce : In(1)
    outp : Out(width)
    """

    def __init__(self, width, cycles):
        self.width = width
        self.cycles = cycles
        super().__init__({
            "inp": In(self.width),
            "ce": In(1, init=1),
            "outp": Out(self.width)
        })

    def elaborate(self, platform):  # noqa: D102
        m = Module()

        prev = self.inp
        for i in range(self.cycles):
            stage = Signal(self.width, name=f"stage{i}")
            with m.If(self.ce):
                m.d.sync += stage.eq(prev)
            prev = stage

        m.d.comb += self.outp.eq(prev)

        return m


class WeightedAdd:
    """Combinational weighted adder strategy.

    Calling an instance as ``add(m, n1, n2)`` adds a :class:`WeightedAdder`
    to module ``m`` summing :class:`Weighted` numbers ``n1`` and ``n2``, and
    returns the sum as a new :class:`Weighted`. The operands can be given in
    either order.

    Attributes
    ----------
    latency : int
        Register stages added by each combine.
    """

    latency = 0

    def __call__(self, m, n1, n2):
        (n1, n2) = self.balance(m, n1, n2)
        if n1.weight < n2.weight:
            (n1, n2) = (n2, n1)

        add = self.adder(m, n1.weight - n2.weight, len(n1), len(n2))
        m.d.comb += [
            add.a.eq(n1.value),
            add.b.eq(n2.value)
        ]

        return Weighted(n2.weight, add.o, n1.latency + self.latency)

    def adder(self, m, shift, a_width, b_width):
        add = WeightedAdder(shift, a_width, b_width)
        m.submodules += add
        return add

    def balance(self, m, n1, n2):
        """Make sure both operands arrive on the same clock cycle.

        Without registers there is nothing to retime with, so operands with
        different latencies are rejected.
        """
        if n1.latency != n2.latency:
            raise UnbalancedPipeline(f"cannot combinationally add {n1!r} and "
                                     f"{n2!r}")
        return (n1, n2)


#: Shared combinational strategy; :class:`WeightedAdd` holds no state.
weighted_add = WeightedAdd()


class PipelinedWeightedAdd(WeightedAdd):
    """Registered weighted adder strategy.

    Each combine instantiates a :class:`PipelinedWeightedAdder` clocked by
    ``ce``. An operand with a lower latency than the other is first delayed
    by a :class:`Delay` line, so both sides of every adder have gone through
    the same number of registers.
    """

    latency = 1

    def __init__(self, ce):
        self.ce = ce

    def adder(self, m, shift, a_width, b_width):
        add = PipelinedWeightedAdder(shift, a_width, b_width)
        m.submodules += add
        m.d.comb += add.ce.eq(self.ce)
        return add

    def balance(self, m, n1, n2):  # noqa: D102
        if n1.latency < n2.latency:
            n1 = self.retime(m, n1, n2.latency - n1.latency)
        elif n2.latency < n1.latency:
            n2 = self.retime(m, n2, n1.latency - n2.latency)
        return (n1, n2)

    def retime(self, m, n, cycles):
        """Delay weighted number ``n`` by ``cycles`` clock-enabled stages."""
        delay = Delay(len(n), cycles)
        m.submodules += delay
        m.d.comb += [
            delay.inp.eq(n.value),
            delay.ce.eq(self.ce)
        ]
        return Weighted(n.weight, delay.outp, n.latency + cycles)

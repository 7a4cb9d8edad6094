# amaranth: UnusedElaboratable=no

import pytest
import random
from collections import deque
from types import SimpleNamespace
from amaranth import Module, Signal, signed, unsigned
from amaranth.back import rtlil
from amaranth.sim import Simulator
from kcmgen.errors import EmptyOperand, UnbalancedPipeline, WidthMismatch
from kcmgen.kcm import KCM, PipelinedKCM, compose, kcm_shape, make_kcm
from kcmgen.table import PipelinedTableMul, subword_products, table_mul
from kcmgen.tree import adder_tree


def operand_range(m):
    if m.signed:
        return range(-2**(m.width - 1), 2**(m.width - 1))
    else:
        return range(0, 2**m.width)


@pytest.fixture
def all_values_tb(mod):
    m = mod

    async def testbench(ctx):
        for a in operand_range(m):
            ctx.set(m.a, a)
            await ctx.delay(1.0 / 12e6)

            assert ctx.get(m.o) == a*m.coefficient

    return testbench


@pytest.fixture
def pipelined_tb(mod):
    m = mod

    async def testbench(ctx):
        # Operands previously applied... inputs to prev.append() are what
        # just went into the multiplier at the current active edge. Outputs
        # from prev.popleft() are what went into the multiplier "m.latency"
        # active edges ago.
        #
        # We only need m.latency - 1 storage, because a latency of "1" means
        # the product is available right after the active edge that sampled
        # the operand. Products of the zero-filled storage are what the
        # pipeline shows out of reset.
        prev = deque([0]*(m.latency - 1))
        r = operand_range(m)

        random.seed(0)
        ctx.set(m.ce, 1)

        for _ in range(256):
            a = random.choice(r)
            ctx.set(m.a, a)
            await ctx.tick()

            prev.append(a)
            assert ctx.get(m.o) == prev.popleft()*m.coefficient

        # Drain pipeline.
        for _ in range(m.latency):
            await ctx.tick()

            prev.append(a)
            assert ctx.get(m.o) == prev.popleft()*m.coefficient

    return testbench


@pytest.fixture
def stall_tb(mod):
    m = mod

    async def testbench(ctx):
        ctx.set(m.ce, 1)
        ctx.set(m.a, -3)
        await ctx.tick()

        # Pipeline should stall...
        ctx.set(m.ce, 0)
        ctx.set(m.a, 7)
        await ctx.tick().repeat(5)
        assert ctx.get(m.o) == 0

        # Until the clock is enabled again.
        ctx.set(m.ce, 1)
        await ctx.tick().repeat(m.latency - 1)
        assert ctx.get(m.o) == -3*m.coefficient

        await ctx.tick()
        assert ctx.get(m.o) == 7*m.coefficient

    return testbench


def test_example():
    m = KCM(5, 11, signed=True)
    assert m.shape == signed(14)

    async def testbench(ctx):
        ctx.set(m.a, -3)
        await ctx.delay(1.0 / 12e6)
        assert ctx.get(m.o) == -15
        assert ctx.get(m.o.as_unsigned()) == 2**14 - 15

    sim = Simulator(m)
    sim.add_testbench(testbench)
    sim.run()


KCMS = [(5, 11, True), (5, 11, False), (-7, 11, True), (-7, 9, False),
        (13, 1, True), (13, 1, False), (13, 3, True), (13, 3, False),
        (13, 4, True), (13, 4, False), (13, 5, True), (13, 5, False),
        (0, 5, True), (1, 8, True), (-1, 8, True), (17, 8, False),
        (255, 6, True), (-16, 10, True)]


@pytest.mark.parametrize("mod", [KCM(*k) for k in KCMS] +
                                [KCM(5, 11, True, debug=True)],
                         ids=[f"{k}{'i' if s else 'u'}{w}"
                              for (k, w, s) in KCMS] + ["debug"])
def test_kcm(sim, all_values_tb):
    sim.run(testbenches=[all_values_tb])


PIPELINED_KCMS = [(5, 11, True), (-7, 9, False), (13, 4, True),
                  (13, 5, False), (17, 16, False), (-3, 20, True)]


@pytest.mark.parametrize("mod", [PipelinedKCM(*k) for k in PIPELINED_KCMS] +
                                [PipelinedKCM(5, 11, True, debug=True)],
                         ids=[f"{k}{'i' if s else 'u'}{w}"
                              for (k, w, s) in PIPELINED_KCMS] + ["debug"])
@pytest.mark.parametrize("clks", [1.0 / 12e6])
def test_pipelined_kcm(sim, pipelined_tb):
    sim.run(testbenches=[pipelined_tb])


@pytest.mark.parametrize("mod,clks", [(PipelinedKCM(5, 11, True),
                                       1.0 / 12e6)])
def test_pipeline_stall(sim, stall_tb):
    sim.run(testbenches=[stall_tb])


@pytest.mark.parametrize("coefficient,width,sign,shape", [
    (5, 11, True, signed(14)),
    (5, 11, False, unsigned(14)),
    (17, 8, False, unsigned(13)),
    (-1, 4, False, signed(5)),
    (-1, 4, True, signed(5)),
    (0, 8, True, unsigned(1)),
    (1, 1, True, signed(1))])
def test_shape(coefficient, width, sign, shape):
    assert kcm_shape(coefficient, width, sign) == shape
    assert KCM(coefficient, width, sign).shape == shape


@pytest.mark.parametrize("width,groups,latency", [(1, [1], 1), (3, [3], 1),
                                                  (4, [4], 1), (5, [4, 1], 2),
                                                  (11, [4, 4, 3], 3),
                                                  (16, [4, 4, 4, 4], 3),
                                                  (20, [4]*5, 4)])
def test_plan(width, groups, latency):
    m = KCM(5, width, signed=True)
    p = PipelinedKCM(5, width, signed=True)

    assert m.groups == groups
    assert p.groups == groups
    assert m.latency == 0
    assert p.latency == latency

    # Only the top group of a signed operand has a signed table.
    assert m.tables[:-1] == [subword_products(5, 4)]*(len(groups) - 1)
    assert m.tables[-1] == subword_products(5, 4, signed=True)
    assert KCM(5, width).tables == [subword_products(5, 4)]*len(groups)


def test_idempotent():
    for pipelined in (False, True):
        m1 = make_kcm(-7, 11, True, pipelined)
        m2 = make_kcm(-7, 11, True, pipelined)

        assert m1.tables == m2.tables
        assert m1.latency == m2.latency
        assert rtlil.convert(m1) == rtlil.convert(m2)


def test_make_kcm():
    assert type(make_kcm(5, 8)) is KCM
    assert type(make_kcm(5, 8, pipelined=True)) is PipelinedKCM
    assert make_kcm(5, 8, debug=True).debug


@pytest.mark.parametrize("width", [0, -4])
def test_empty_operand(width):
    with pytest.raises(EmptyOperand):
        KCM(5, width)
    with pytest.raises(EmptyOperand):
        kcm_shape(5, width)


def test_bad_params():
    with pytest.raises(TypeError):
        KCM(2.5, 8)
    with pytest.raises(TypeError):
        PipelinedKCM(5, "8")


def test_bad_multiplier():
    def short_mul(m, coefficient, group, signed):
        mul = table_mul(m, coefficient, group, signed)
        return SimpleNamespace(o=mul.o[:-1], latency=mul.latency)

    with pytest.raises(WidthMismatch):
        compose(Module(), Signal(8), 5, False, short_mul, adder_tree)


def test_mixed_multipliers():
    registered = PipelinedTableMul(Signal(init=1))

    # Register only the top group's partial product.
    def mixed_mul(m, coefficient, group, signed):
        if signed:
            return registered(m, coefficient, group, signed)
        return table_mul(m, coefficient, group, signed)

    with pytest.raises(UnbalancedPipeline):
        compose(Module(), Signal(8), 5, True, mixed_mul, adder_tree)


def test_single_group_mixed():
    # With one group there is nothing to balance against.
    registered = PipelinedTableMul(Signal(init=1))
    product = compose(Module(), Signal(4), 5, True, registered, adder_tree)
    assert product.latency == 1
    assert product.weight == 0
    assert len(product) == 7

"""Balanced adder trees over weighted numbers."""

from .errors import EmptyOperand, WidthMismatch
from .weighted import combined_width, weighted_add


def _check_sum(n1, n2, total):
    (heavy, light) = (n1, n2) if n1.weight >= n2.weight else (n2, n1)
    shift = heavy.weight - light.weight
    width = combined_width(shift, len(heavy), len(light))

    if total.weight != light.weight or len(total) != width:
        raise WidthMismatch(f"adding {n1!r} and {n2!r} should give weight "
                            f"{light.weight} and width {width}, not "
                            f"{total!r}")


def adder_tree(m, items, adder=weighted_add):
    r"""Sum weighted numbers with a balanced binary tree of adders.

    The items are split in two halves (the first half gets the extra item
    when there is an odd number of them), each half is summed recursively,
    and the two partial sums are combined with ``adder``. For ``n`` items the
    tree is :math:`\lceil \log_2 n \rceil` adders deep.

    Whether the tree is pipelined is entirely up to ``adder``; see
    :class:`~kcmgen.weighted.WeightedAdd` and
    :class:`~kcmgen.weighted.PipelinedWeightedAdd`.

    Parameters
    ----------
    m : :class:`amaranth:amaranth.hdl.Module`
        Module which the adders are added to.
    items : sequence of :class:`~kcmgen.weighted.Weighted`
        The numbers to add, in increasing weight order.
    adder : callable
        ``adder(m, n1, n2)`` returns the sum of
        :class:`~kcmgen.weighted.Weighted` numbers ``n1`` and ``n2``.
        Defaults to the combinational :data:`~kcmgen.weighted.weighted_add`.

    Returns
    -------
    :class:`~kcmgen.weighted.Weighted`
        The sum of all items. A single item is returned as-is.

    Raises
    ------
    EmptyOperand
        If ``items`` is empty.
    WidthMismatch
        If ``adder`` returns a sum with an unexpected weight or width.
    """
    items = list(items)
    if not items:
        raise EmptyOperand("adder tree needs at least one operand")

    if len(items) == 1:
        return items[0]

    half = (len(items) + 1) // 2
    lhs = adder_tree(m, items[:half], adder)
    rhs = adder_tree(m, items[half:], adder)

    total = adder(m, lhs, rhs)
    _check_sum(lhs, rhs, total)

    return total

"""Exceptions raised while elaborating KCM components."""


class KCMError(ValueError):
    """Base class of all errors raised by the KCM generators."""


class InvalidGroupWidth(KCMError):
    """A sub-word multiplier was requested for a width outside ``1..4``."""


class EmptyOperand(KCMError):
    """An operand (or a list of operands) has nothing in it."""


class WidthMismatch(KCMError):
    """A multiplier or adder primitive broke its width/weight contract."""


class UnbalancedPipeline(KCMError):
    """Operands reached an adder after different numbers of registers."""

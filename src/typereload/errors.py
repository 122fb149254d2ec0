"""Exceptions raised by the weaver."""


class WeaveError(Exception):
    """A module could not be transformed. No partial result is ever returned."""


class GenericContextError(WeaveError):
    """A reference into a generic class could not be qualified with its own type parameters."""


class AlreadyTransformedError(WeaveError):
    """The module was already woven; weaving is single-pass only."""

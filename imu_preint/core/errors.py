"""
Exceptions raised by the preintegration core.

Only caller mistakes are surfaced. Numerically degenerate rotations
(zero angle, angle near pi) are handled inside the geometry helpers.
"""


class InvalidInputError(ValueError):
    """A measurement or configuration was rejected before any state changed."""

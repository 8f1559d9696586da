"""
Error types raised by the partial tracking core.
"""


class InvalidParameterError(ValueError):
    """Raised when a tracking parameter lies outside its valid domain.

    The tracker raises this before mutating any of its state, so the
    previous tolerance settings stay in effect.
    """

    def __init__(self, name, value, reason):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {name}={value!r}: {reason}")

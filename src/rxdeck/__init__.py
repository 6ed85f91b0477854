"""rxdeck: spaced-repetition drills for generic/brand drug names."""

from rxdeck.consts import VERSION

__version__ = VERSION

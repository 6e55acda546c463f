"""Rune target tracking: PnP pose, rotation curve fitting, filtering and ballistic aiming."""

__version__ = "0.1.0"
"""Off-chain verification oracle for an on-chain charity registry."""

__version__ = "0.1.0"

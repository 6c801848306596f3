"""sorosign - build, simulate, authorize, sign and submit Soroban transactions."""

__version__ = "0.1.0"

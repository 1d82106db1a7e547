"""NetInstall - dependency-ordered installer for the NetTools platform."""

__version__ = "0.1.0"

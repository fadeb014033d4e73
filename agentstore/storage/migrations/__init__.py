"""Packaged migration units, applied in ascending order of their numeric prefix."""

"""Pluggable scoring and validation strategies."""

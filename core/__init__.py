"""Shared runtime primitives."""

"""Concrete adapters for the interfaces in :mod:`ragkb.interfaces`."""

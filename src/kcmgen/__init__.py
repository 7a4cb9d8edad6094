"""Constant-coefficient multiplier (KCM) generators for Amaranth HDL."""

"""Denormalized charging-session reports from the AMPECO public API."""
from __future__ import annotations

__version__ = "0.1.0"

"""Trajmem CLI."""

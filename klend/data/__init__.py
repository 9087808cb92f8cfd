"""Decoded account records, constants and data providers for lending markets."""

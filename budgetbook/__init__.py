"""Household budget tooling."""

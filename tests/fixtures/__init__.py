"""Shared test fixtures, factories and mixins."""

"""Synthetic data generators for tests."""

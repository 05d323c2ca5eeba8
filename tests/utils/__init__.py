"""Test utilities: builders and in-memory fakes."""

"""Clinic visit lifecycle bounded context."""

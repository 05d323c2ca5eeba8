"""Visits application layer: ports, DTOs and orchestration services."""

"""Visits infrastructure: REST adapters, STOMP transport, checkout ledgers."""

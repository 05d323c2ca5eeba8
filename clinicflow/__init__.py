"""
ClinicFlow - clinic visit lifecycle and payment confirmation core.

Sequences medical record and lab order status transitions and reconciles
asynchronous QR payment settlement with record creation.
"""

__version__ = "0.1.0"

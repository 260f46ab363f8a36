"""
Clinic Booking System

A FastAPI backend for booking doctor appointments: per-doctor slot ledger,
day-off availability policy with a periodic reconciler, and the appointment
lifecycle from booking through payment, cancellation or completion.
"""

__version__ = "1.0.0"

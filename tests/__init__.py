"""
Test suite for the Clinic Booking System.

Contains unit and integration tests for the booking core and its HTTP surface.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
os.environ.setdefault("RECONCILER_ENABLED", "false")

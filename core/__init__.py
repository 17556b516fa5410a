"""
Core Module Package.

This package contains the infrastructure components the
worker runtime depends on.

Components:
- exceptions: Custom exception hierarchy
- state_manager: Lifecycle state machine
- logging_setup: Logging and pipe-safe standard streams
"""

# pseudonymization/core/__init__.py

"""Core domain models and utilities used across the pseudonymization system.

This package provides domain types, exceptions, and vocabulary helpers
shared by the rest of the application.
"""

"""Core domain logic for coach health alerting.

This package contains the business logic and domain models,
isolated from external dependencies for easy testing and reasoning.
"""

"""Core domain logic for personal health tracking.

This package contains the business logic and domain models,
isolated from storage, cloud and HTTP details for easy testing and reasoning.
"""

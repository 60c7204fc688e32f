"""Contracts shared between the rating and notification services."""

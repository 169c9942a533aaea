"""Route Coverage Domain Layer.

This package contains the core business logic organized by bounded contexts:
- coverage: tile addressing, route sampling, pixel classification, summaries
"""

# Imports alphabetized per project style (isort)
from domain import coverage

__all__ = ["coverage"]

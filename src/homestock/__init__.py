"""
Homestock household inventory package.

The package tracks shared household stock and a shopping list, and folds
bought shopping-list entries back into inventory exactly once.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

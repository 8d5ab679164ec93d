"""
TableDesk: order, table session and payment lifecycle for restaurants.
"""

__version__ = "0.1.0"

"""
Storefront order and payment lifecycle API.
"""
__version__ = "1.0.0"

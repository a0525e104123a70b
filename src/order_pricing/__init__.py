"""
Order Pricing Package

Discount and total evaluation for restaurant orders.
Resolves cart pricing using Subtotal → Category Discounts → Total pipeline.
"""

__version__ = "1.0.0"

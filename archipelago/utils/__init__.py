"""
Utilities for archipelago
"""

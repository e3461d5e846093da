"""Version information for archipelago"""

__version__ = "0.1.0"

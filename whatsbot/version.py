"""
Version information for whatsbot.
"""

__version__ = '0.3.0'

"""
harreplay - serve a recorded HAR session back to a live client.
"""

__version__ = '1.0.0'

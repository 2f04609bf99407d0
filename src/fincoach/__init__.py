"""
fincoach: session coordination backend for conversational financial coaching.
"""

__version__ = "0.1.0"

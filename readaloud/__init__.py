"""
Read-Aloud Toolkit

Speaks assessment content aloud and highlights each spoken word in the
rendered content. Supports a local speech engine and network neural voices.
"""

__version__ = "1.0.0"

"""
flowpatch
Incremental diff/patch editing for node-and-connection automation workflows
"""

__version__ = "1.0.0"

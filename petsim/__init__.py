"""
Pet Simulator: an incremental pet clicker game client and its sync server.
"""

__version__ = "0.1.0"

"""
Shared identity and role model for the task manager server and client.
"""

__version__ = "0.1.0"

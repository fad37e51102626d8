"""
Task Manager Client

Keeps an authenticated session against a Task Manager server: stores the
credential pair, restores it on start-up, and transparently refreshes it
when the server rejects an expired access token.
"""

__version__ = "0.1.0"

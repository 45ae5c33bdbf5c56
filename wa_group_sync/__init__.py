"""
wa_group_sync - WhatsApp admin group discovery and sync.

Scans a user's WhatsApp groups through the gateway API, detects the groups
the user administers or created, and persists them without ever silently
discarding previously known-good data.
"""

__version__ = "0.1.0"

"""gamepush — Web Push notifications for daily game numbers.

Watches the per-game date records in a Firebase Realtime Database and
pushes a browser notification to every registered subscriber as soon as
today's number for a game is published.
"""

__version__ = "0.1.0"

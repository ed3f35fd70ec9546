"""
Change notifications.

Responsibilities:
- Record preference and context change events emitted by the store.
- Expose recent events to UI collaborators that poll for updates.
"""

"""
Core engine.

Components:
- state.py: AppState, the in-memory task view and mutation facade
- ports.py: Protocols the core depends on (store, notifier, clock)
- notifications.py: default escalation notifier
"""

"""
Task subsystem.

Components:
- task_models.py: data structures (Tier, Task)
- task_store.py: SQLite-backed storage + query/update helpers
- escalation.py: periodic scheduler that escalates tasks toward L1
"""

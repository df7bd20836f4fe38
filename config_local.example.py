# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env`. This file only supports the two feature switches below.
"""

# Example: keep tasks where you put them
# ESCALATION_ENABLED = False

# Example: escalate silently
# NOTIFICATIONS_ENABLED = False

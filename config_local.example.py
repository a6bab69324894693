# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Only the switches below are read; everything else belongs in `.env`.
"""

# Example: run the relay headless (no REPL)
# CONSOLE_ENABLED = False

# Example: keep notifications in the inbox only
# RELAY_ENABLED = False

# Example: refuse dependency cycles on this machine
# REJECT_DEPENDENCY_CYCLES = True

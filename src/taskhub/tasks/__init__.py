"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TimeEntry, TaskView, enums)
- task_store.py: SQLite-backed storage with per-record compare-and-swap + user directory
- atomic.py: read-modify-write retry loop on top of the store's CAS
- permissions.py: role/ownership decision table
- dependencies.py: symmetric depends_on/blocks edges
- time_tracking.py: start/stop timers and time totals
- task_service.py: the mutation service used by connectors
"""

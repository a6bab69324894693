"""
Notification subsystem.

Components:
- models.py: DomainEvent (what the task core emits) and Notification (what is stored)
- store.py: SQLite inbox implementing the NotificationSink port
- relay.py: polling loop that pushes undelivered notifications to a connector
"""

"""
Push subsystem.

Components:
- push_models.py: registrations, payloads, delivery results
- registry.py: SQLite-backed registration store
- delivery.py: delivery channels (HTTP relay, dry-run)
- push_scheduler.py: adaptive once-a-day scheduler loop
"""

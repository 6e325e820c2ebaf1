"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, checklist/criteria/QA/audit records)
- task_propagation.py: status/progress propagation over the task forest
- task_storage.py: load()/save() persistence (JSON file, in-memory)
- task_store.py: the repository used by the rest of the app
"""

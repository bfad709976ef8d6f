"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskCollection)
- errors.py: storage failure types
- task_store.py: durable JSON snapshot storage (+ in-memory variant)
- task_repository.py: record-level operations and the LWW merge rule
- task_api.py: asyncio facade and small wiring helpers
"""

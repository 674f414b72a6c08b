"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskFilter, TaskQuery, TaskChange)
- task_store.py: SQLite-backed storage + query/update helpers
- live_query.py: LiveQuery, a self-refreshing snapshot iterator
- task_repository.py: async single-writer facade that drives live queries
- task_query_engine.py: (search, filter) -> one switching, shared live list
- task_api.py: small high-level helpers used by the rest of the app
"""

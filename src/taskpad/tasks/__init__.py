"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Identity, Mutation, MutationState)
- reconciler.py: in-memory task list with optimistic add/toggle/remove
"""

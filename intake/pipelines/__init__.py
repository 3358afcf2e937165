"""Request pipelines for saving and listing flows.

Each pipeline takes its collaborators (store, notifier) as arguments so the
HTTP layer can inject them and tests can pass fakes.
"""

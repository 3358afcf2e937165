"""Backend package: DB models, shaping, notifications, pipelines, APIs.

This package accepts flow submissions, persists them to the ``user_flows``
table, notifies Slack, and serves the stored flows back with filters.
"""

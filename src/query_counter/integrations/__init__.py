# src/query_counter/integrations/__init__.py
"""Reference collaborators that feed the recording API and open scopes.

- sqlalchemy: engine and session event listeners (query/transaction recording)
- asgi: middleware wrapping each request in a scope
- jobs: decorator wrapping each job run in a scope

Each module is imported on demand so that hosts only pay for what they use.
"""

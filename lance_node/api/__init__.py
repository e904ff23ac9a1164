# lance_node/api/__init__.py
"""HTTP routers for the lance-node service."""

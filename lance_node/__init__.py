"""
lance-node package initializer

Keep this module lightweight. Do not import the API or crypto stack here, so
``python -m lance_node keygen`` and library use do not pull in FastAPI.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

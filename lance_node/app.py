"""
lance_node/app.py
-----------------
Thin entrypoint for running the Lance FastAPI app via:

    uvicorn lance_node.app:app

All real route wiring lives in lance_node.lance_api.
"""

from .lance_api import create_app

app = create_app()  # re-export for uvicorn


if __name__ == "__main__":
    # Convenience for: python -m lance_node.app
    import uvicorn

    from .settings import get_settings

    s = get_settings()
    uvicorn.run(app, host=s.server.host, port=s.server.port)

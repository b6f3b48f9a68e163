# run.py
"""
Dev server with hot-reload.
Uses watchfiles.run_process to respawn uvicorn when app/ changes.

  python run.py              → reload on .py changes under app/
  python run.py --no-reload  → plain uvicorn
"""
import os
import sys


HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))


def _server():
    """Worker function — runs in each spawned subprocess."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=False,       # watchfiles handles restarts, not uvicorn
        log_level="info",
    )


if __name__ == "__main__":
    if "--no-reload" in sys.argv:
        _server()
    else:
        from watchfiles import run_process

        print("🔄  Hot-reload active — watching app/")
        print(f"📡  Server → http://{HOST}:{PORT}")
        run_process(
            "app",
            target=_server,
            watch_filter=lambda _, p: p.endswith(".py"),
        )

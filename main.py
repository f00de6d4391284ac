"""Server launcher.

    python main.py

See seat_allocation/app.py for the application factory and service wiring.
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))


def main() -> None:
    """Start the workstation allocation API."""
    print("=" * 60)
    print("  Workstation Allocation Service")
    print("=" * 60)
    print(f"  Server  : http://{HOST}:{PORT}")
    print(f"  API docs: http://{HOST}:{PORT}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    uvicorn.run(
        "seat_allocation.app:app",
        host=HOST,
        port=PORT,
        reload=os.getenv("RELOAD", "0") == "1",
        log_level="info",
    )


if __name__ == "__main__":
    main()

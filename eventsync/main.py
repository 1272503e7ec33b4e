from __future__ import annotations

import os

import uvicorn


def main() -> None:
    host = os.getenv("EVENTSYNC_HOST", "127.0.0.1")
    port = int(os.getenv("EVENTSYNC_PORT", "8090"))
    uvicorn.run("eventsync.web_app:create_app", host=host, port=port, reload=False, factory=True)


if __name__ == "__main__":
    main()

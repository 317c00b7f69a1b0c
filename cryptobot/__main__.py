from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Serve the application on PORT (default 3000)."""
    uvicorn.run("cryptobot.app:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "3000")))


if __name__ == "__main__":
    main()

"""
Run the gateway with uvicorn: ``python -m eway_gateway``.
"""

import os

import uvicorn

from .config import DEFAULT_PORT


def main() -> None:
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run("eway_gateway.main:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()

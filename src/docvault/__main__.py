"""Run the docvault API with uvicorn: ``python -m docvault``."""

from __future__ import annotations

import os

import uvicorn

from .main import create_app
from .settings import VaultSettings


def main() -> None:
    app = create_app(VaultSettings.from_env())
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()

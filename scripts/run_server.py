"""Run the surfacegen HTTP API with uvicorn."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "src.surfacegen.main:create_app",
        factory=True,
        host=os.environ.get("SURFACEGEN_HOST", "127.0.0.1"),
        port=int(os.environ.get("SURFACEGEN_PORT", "8000")),
    )


if __name__ == "__main__":
    main()

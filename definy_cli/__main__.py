"""Entry point for `python -m definy_cli` and the `definy` console script."""

from __future__ import annotations

from definy_cli.app import app
from definy_core.config import load_settings
from definy_core.telemetry import configure_logging


def main() -> None:
    configure_logging(load_settings())
    app()


if __name__ == "__main__":
    main()

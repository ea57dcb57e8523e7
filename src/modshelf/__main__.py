"""Allow running as python -m modshelf."""

from modshelf.cli import app


def main() -> None:
    app()


main()

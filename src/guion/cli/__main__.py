"""Main entry point for guion CLI when run as a module."""

from guion.cli.main import main

if __name__ == "__main__":  # pragma: no cover
    main()

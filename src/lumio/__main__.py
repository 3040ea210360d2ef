"""Entry point for running as python -m lumio."""

from lumio.cli import main

if __name__ == "__main__":
    main()

"""Main entry point for the dirsql shell (``python -m dirsql.main``)."""
from dirsql.cli.main import main

if __name__ == "__main__":
    main()

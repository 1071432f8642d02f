"""Allow ``python -m backuper``."""

from backuper.cli.app import main

if __name__ == "__main__":
    main()

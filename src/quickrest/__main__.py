"""Allow ``python -m quickrest``."""

from quickrest.cli.main import main

main()

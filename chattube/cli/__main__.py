"""Allow ``python -m chattube.cli`` execution."""

from chattube.cli.worker import main

main()

from .sentinel_cli import main

main()

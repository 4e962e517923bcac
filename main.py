"""Run the Chatstream CLI: ``python main.py``."""

from cli.client import main

if __name__ == "__main__":
    main()

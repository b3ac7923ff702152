"""Entry point: python -m agent_notifier [--bind-address ADDR] [--port PORT]"""

from .server import main

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Banking API Entry Point

Starts the FastAPI server with the configured host and port.
"""

import sys

from banking_api.api import run_server
from banking_api.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Banking API...")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Banking API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

#!/usr/bin/env python3
"""
Collection Desk Entry Point

Starts the FastAPI server with the host, port and storage from COLLECTIONS_* settings.
"""

import sys

from collection_desk.api import run_server
from collection_desk.config import get_config
from collection_desk.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Collection Desk...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Collection Desk...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

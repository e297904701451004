#!/usr/bin/env python3
"""
POS Credit Ledger Entry Point

Starts the FastAPI server with the credit ledger.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import uvicorn

from pos_credit.api import create_app
from pos_credit.config import get_config
from pos_credit.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting POS Credit Ledger...")
    print(f"Store: {config.store_name} ({config.currency})")
    print(f"Reminders via: {config.notification_channel}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(create_app(), host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down POS Credit Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

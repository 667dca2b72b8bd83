#!/usr/bin/env python3
"""
Token Ledger Entry Point

Starts the FastAPI server for the token ledger. Configuration comes from
TOKEN_LEDGER_* environment variables or a .env file; the initial holder
(TOKEN_LEDGER_INITIAL_HOLDER) must be set.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from token_ledger.api import run_server, get_service
from token_ledger.config import get_config
from token_ledger.errors import LedgerError


if __name__ == "__main__":
    settings = get_config()
    print(f"Starting token ledger for {settings.token_symbol}...")

    try:
        # Build the ledger up front so configuration errors surface here
        service = get_service()
        print(f"Initial supply {service.ledger.total_supply} minted to {settings.initial_holder}")
        print(f"API available at: http://{settings.api_host}:{settings.api_port}")

        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down token ledger...")
    except LedgerError as e:
        print(f"Invalid ledger configuration: {e}")
        sys.exit(1)

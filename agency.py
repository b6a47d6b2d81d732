"""
Agency Engine v1.0
Rules engine server for Agency investigations. The engine is the outer loop;
an LLM narrator can attach through mcp_server.py for prose.

Run:  python agency.py
API:  http://localhost:8000/docs
"""

import logging
import os
import sys

import uvicorn

# Ensure engine directory is on the path
ENGINE_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, ENGINE_DIR)

from config import DATA_DIR, DB_PATH, HOST, LOG_LEVEL, PORT, REDIS_URL, SCENARIOS_DIR
from web.routes import app, init_game


def main():
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    os.makedirs(DATA_DIR, exist_ok=True)

    init_game(DB_PATH, SCENARIOS_DIR)

    print("=" * 50)
    print("  AGENCY ENGINE v1.0")
    print("=" * 50)
    print(f"  Server:    http://localhost:{PORT}")
    print(f"  Database:  {DB_PATH}")
    print(f"  Cache:     {REDIS_URL}")
    print(f"  Scenarios: {SCENARIOS_DIR}")
    print()
    print("  Connect an MCP client to mcp_server.py for narration.")
    print("  Press Ctrl+C to stop.")
    print("=" * 50)
    print()

    # Start server (blocking)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()

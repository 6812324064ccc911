"""
Start Backtest API Server

Launches the Backtest REST API. Host and port come from the environment
(or a .env file): SPREADEX_HOST, SPREADEX_BACKTEST_PORT.
"""

import os
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

if __name__ == "__main__":
    host = os.environ.get("SPREADEX_HOST", "0.0.0.0")
    port = int(os.environ.get("SPREADEX_BACKTEST_PORT", "8011"))

    print("="*60)
    print("  Spreadex - Backtest API")
    print("="*60)
    print()
    print(f"Starting server on http://{host}:{port}")
    print()
    print("Available endpoints:")
    print("  POST /backtest          - Pair-spread or momentum/RSI backtest")
    print("  POST /backtest/batch    - Backtest candidates against a primary")
    print("  POST /optimize          - Walk-forward optimization")
    print("  GET  /config            - Defaults and parameter grid")
    print()
    print("Press CTRL+C to stop")
    print("="*60)
    print()

    uvicorn.run(
        "spreadex.backtest.api:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )

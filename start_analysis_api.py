"""
Start Pair Analysis API Server

Launches the Pair Analysis REST API. Host and port come from the
environment (or a .env file): SPREADEX_HOST, SPREADEX_ANALYSIS_PORT.
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
    port = int(os.environ.get("SPREADEX_ANALYSIS_PORT", "8010"))

    print("="*60)
    print("  Spreadex - Pair Analysis API")
    print("="*60)
    print()
    print(f"Starting server on http://{host}:{port}")
    print()
    print("Available endpoints:")
    print("  POST /analyze           - Analyze one pair")
    print("  POST /analyze/batch     - Analyze candidates against a primary")
    print("  POST /confluence        - Multi-timeframe confluence ranking")
    print("  GET  /health            - System health")
    print("  GET  /health/{symbol}   - Pair health for a symbol")
    print("  GET  /recent            - Recent analyses")
    print("  GET  /config            - Configuration")
    print("  POST /reset-health      - Reset metrics (admin)")
    print()
    print("Press CTRL+C to stop")
    print("="*60)
    print()

    uvicorn.run(
        "spreadex.analysis.api:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )

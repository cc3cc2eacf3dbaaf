#!/usr/bin/env python3
"""
OCE Shopify Backend Startup Script

Starts the FastAPI server for the embedded app, Shopify webhooks and the
Smartlead reply webhook. Background work runs in a separate process:

    arq oce_app.workers.arq_worker.WorkerSettings
"""

import os
import sys
from pathlib import Path

import uvicorn


def main():
    """Start the OCE API server."""
    print("Starting OCE Shopify backend...")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   Healthcheck: http://localhost:8000/health")
    print("")

    env_file = Path(".env")
    if not env_file.exists():
        print("WARNING: No .env file found!")
        print("   Run generate_keys.py to create one from .env.template, then set at least:")
        print("   DATABASE_URL, SHOPIFY_API_KEY, SHOPIFY_API_SECRET, SHOPIFY_APP_URL")
        print("")

    try:
        uvicorn.run(
            "oce_app.main:app",
            host="0.0.0.0",
            port=int(os.getenv("PORT", "8000")),
            reload=os.getenv("ENVIRONMENT", "development") != "production",
            reload_dirs=["oce_app"],
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nShutting down OCE API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

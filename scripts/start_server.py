#!/usr/bin/env python3
"""
Startup script for the Tailor Ops backend
"""

import sys
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from tailor_ops.config import get_settings
from tailor_ops.logging_conf import configure_logging


def check_environment(settings):
    """Report what the current environment will run with"""
    if settings.STORAGE_BACKEND == "memory":
        print("⚠️  STORAGE_BACKEND=memory: data is lost on restart")
    elif not settings.DATABASE_URL:
        print("ℹ️  DATABASE_URL not set, using local SQLite file")

    twilio_vars = ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"]
    missing = [var for var in twilio_vars if not getattr(settings, var)]
    if missing:
        print(f"ℹ️  {', '.join(missing)} not set, SMS will be logged only")

    print(f"⚖️  Balance update mode: {settings.BALANCE_UPDATE_MODE}")


def start_server(host: str = "0.0.0.0", port: int = 3000, reload: bool = False):
    """Start the HTTP + websocket server"""
    import uvicorn

    print(f"🚀 Starting Tailor Ops backend on {host}:{port}")
    print(f"📊 Health check: http://{host}:{port}/health")
    print(f"🔄 Order events WebSocket: ws://{host}:{port}/ws?customerId=<id>")

    uvicorn.run(
        "tailor_ops.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Start the Tailor Ops backend")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=3000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    check_environment(settings)
    start_server(args.host, args.port, args.reload)


if __name__ == "__main__":
    main()

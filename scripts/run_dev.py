#!/usr/bin/env python3
"""
Development server runner for the Sentinel API
Includes auto-reload, logging, and environment checking
"""

import os
import sys
import uvicorn
from pathlib import Path

# Add the parent directory to Python path
sys.path.append(str(Path(__file__).parent.parent))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def check_environment():
    """Check that the configured backends have what they need."""
    backend = os.getenv("SENTINEL_STORE_BACKEND", "memory")
    if backend == "postgres" and not os.getenv("SENTINEL_DB_DSN"):
        print("❌ SENTINEL_STORE_BACKEND=postgres requires SENTINEL_DB_DSN")
        return False

    crawler = os.getenv("CRAWLER_BACKEND", "none")
    if crawler == "feed" and not os.getenv("CRAWLER_FEED_URL"):
        print("❌ CRAWLER_BACKEND=feed requires CRAWLER_FEED_URL")
        return False

    optional_vars = [
        "API_HOST",
        "API_PORT",
        "DEBUG",
        "SENTINEL_AHASH_THRESHOLD",
        "SENTINEL_DHASH_THRESHOLD",
        "SENTINEL_PHASH_THRESHOLD",
        "HASH_WORKERS",
    ]

    print(f"✅ Store backend: {backend}, crawler: {crawler}")
    print("\n📋 Optional configurations:")
    for var in optional_vars:
        print(f"  {var}: {os.getenv(var, 'Not set')}")

    return True


def check_dependencies():
    """Check if all required dependencies are available."""
    required_modules = [
        "fastapi",
        "uvicorn",
        "psycopg2",
        "PIL",  # Pillow imports as PIL
        "cv2",
        "numpy",
        "requests",
        "structlog"
    ]

    missing_modules = []
    for module in required_modules:
        try:
            __import__(module)
        except ImportError:
            missing_modules.append(module)

    if missing_modules:
        print(f"❌ Missing required Python modules: {', '.join(missing_modules)}")
        print("Please run: pip install -e .")
        return False

    print("✅ All required dependencies found")
    return True


def main():
    """Main entry point for development server."""
    print("🛡️  Sentinel - Development Server")
    print("=" * 50)

    if not check_environment():
        sys.exit(1)

    if not check_dependencies():
        sys.exit(1)

    if os.getenv("SENTINEL_STORE_BACKEND", "memory") == "postgres":
        from sentinel.core.database import check_database_connection
        if check_database_connection():
            print("✅ Database connection successful")
        else:
            print("❌ Database connection failed")
            print("Please check your database configuration")
            sys.exit(1)

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", 8000))
    debug = os.getenv("DEBUG", "true").lower() == "true"

    print(f"\n🚀 Starting development server...")
    print(f"   Host: {host}")
    print(f"   Port: {port}")
    print(f"   Debug: {debug}")
    print(f"   Docs: http://{host}:{port}/docs")
    print("\n⏹️  Press Ctrl+C to stop the server")
    print("=" * 50)

    try:
        uvicorn.run(
            "sentinel.main:app",
            host=host,
            port=port,
            reload=debug,
            log_level="debug" if debug else "info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")


if __name__ == "__main__":
    main()

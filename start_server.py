#!/usr/bin/env python3
"""
Simple script to start the exposure scan backend server
"""
import sys

import uvicorn

from exposure_scan.backend.config import Settings

if __name__ == "__main__":
    settings = Settings.from_env()

    print("🚀 Starting Exposure Scan Backend Server...")
    print(f"📍 Server will run on: http://{settings.host}:{settings.port}")
    print(f"🔎 Scan endpoint: POST http://{settings.host}:{settings.port}/api/scan")
    print("⏹️  Press Ctrl+C to stop the server")
    print()

    try:
        uvicorn.run(
            "exposure_scan.backend.app:app",
            host=settings.host,
            port=settings.port,
            reload=False,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        print("\n✅ Server stopped gracefully")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)

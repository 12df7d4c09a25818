#!/usr/bin/env python3
"""
Startup script for the Project Planner API
"""

import uvicorn
import os
from dotenv import load_dotenv

def main():
    load_dotenv()

    # Server configuration
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "true").lower() == "true"

    print("Starting Project Planner API...")
    print(f"Host: {host}")
    print(f"Port: {port}")
    print(f"Reload: {reload}")
    print(f"Scheduler: {os.getenv('SCHEDULER_ENABLED', 'true')}")
    print("=" * 50)

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Launch script for the DriveScore backend.

Usage:
    python run_server.py [data_folder] [--port PORT] [--host HOST]

Examples:
    python run_server.py                    # Use default ./data/logs folder
    python run_server.py /path/to/logs      # Use custom folder
    python run_server.py --sample           # Write a sample drive to the sim channel first
"""

import argparse
import os
import sys
from pathlib import Path

# Add drivescore to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="DriveScore Backend Server")
    parser.add_argument(
        "data_folder",
        nargs="?",
        default="./data/logs",
        help="Folder holding the channel logs and score file (default: ./data/logs)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--sample", "-s",
        action="store_true",
        help="Append a generated sample drive to the sim channel before starting"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode"
    )

    args = parser.parse_args()

    data_folder = Path(args.data_folder)

    print("DriveScore Backend")
    print("=" * 40)
    print(f"Data folder: {data_folder.absolute()}")
    print(f"Server: http://{args.host}:{args.port}")
    print("=" * 40)

    os.environ["DRIVESCORE_DATA_FOLDER"] = str(data_folder)

    if args.sample:
        from drivescore.services.log_store import LogStore
        from drivescore.utils.sample_data import generate_sample_drive

        data_folder.mkdir(parents=True, exist_ok=True)
        count = generate_sample_drive(LogStore(data_folder), "sim")
        print(f"\nWrote {count} sample records to the sim channel")

    print("\nAPI Endpoints:")
    print("  GET  /health                          - Detailed health")
    print("  GET  /folder                          - Current folder info")
    print("  POST /folder                          - Set data folder")
    print("  GET  /logs/{channel}                  - Read a channel log")
    print("  POST /logs/{channel}                  - Log a sample")
    print("  POST /logs/{channel}/markers          - Log a connection marker")
    print("  GET  /trips/{channel}                 - List trips")
    print("  GET  /trips/{channel}/{id}/pins       - Event pins per type")
    print("  GET  /trips/{channel}/{id}/combined   - Combined event markers")
    print("  GET  /score                           - Safety score")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "drivescore.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()

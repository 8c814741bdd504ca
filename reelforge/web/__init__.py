"""Web interface for ReelForge.

This package provides the FastAPI backend that exposes the approval
workflow over HTTP and pushes job progress over WebSocket.

Usage:
    python -m reelforge.web [--port 8000] [--host 127.0.0.1]
"""

__version__ = "0.1.0"

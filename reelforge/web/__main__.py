"""Run the ReelForge API server.

    python -m reelforge.web --data-dir ./data/projects --config config.yaml
"""

import argparse
import sys
from pathlib import Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reelforge-web",
        description="Serve the ReelForge workflow API",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="TCP port")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("data/projects"),
        help="Where project JSON documents are stored",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with workflow, gateway and logging sections",
    )
    parser.add_argument("--workers", type=int, default=4, help="Generation jobs run at once")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # FastAPI and uvicorn are only imported once the arguments are valid
    import uvicorn

    from reelforge.logger import get_logger

    from .backend.dependencies import get_config

    web_config = get_config()
    web_config.host = args.host
    web_config.port = args.port
    web_config.data_dir = args.data_dir
    web_config.config_path = args.config
    web_config.job_workers = args.workers

    get_logger(__name__).info(
        "server_starting",
        url=f"http://{args.host}:{args.port}",
        data_dir=str(args.data_dir.resolve()),
        config=str(args.config) if args.config else None,
        workers=args.workers,
    )
    uvicorn.run(
        "reelforge.web.backend.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

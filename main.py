import argparse
import os
from pathlib import Path

import uvicorn


def _default_db_dir() -> Path:
    return Path(os.environ.get("DB_DIR", Path.cwd() / "data"))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the exam delivery API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--db-dir", type=Path, default=_default_db_dir())
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    os.environ["DB_DIR"] = str(args.db_dir)

    from api.app import app

    uvicorn.run(app, host=args.host, port=args.port)

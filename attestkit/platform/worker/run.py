"""Standalone outbox worker: ``attestkit-outbox-worker [--once]``."""

from __future__ import annotations

import argparse
import logging
import os

from attestkit import create_app
from attestkit.platform.worker.config import DispatchConfig
from attestkit.platform.worker.dispatcher import run_dispatcher


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Deliver staged attestation events.")
    parser.add_argument("--once", action="store_true", help="process a single batch and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.environ.get("WORKER_LOGLEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(os.environ.get("APP_ENV", "development"))
    with app.app_context():
        # create_app registers the notifier on the shared bus.
        run_dispatcher(DispatchConfig.from_mapping(app.config), once=args.once)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

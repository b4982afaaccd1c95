"""Development server for the SalonQueue API."""
from __future__ import annotations
import logging
import os
from salonqueue import create_app


def main() -> None:
    app = create_app()
    app.logger.setLevel(logging.INFO)

    queue_rules = [rule.rule for rule in app.url_map.iter_rules() if rule.endpoint.startswith("queue.")]
    app.logger.info("Serving %d routes (%d queue routes)", len(list(app.url_map.iter_rules())), len(queue_rules))
    app.logger.info(
        "Queue positions: %s, default service length %s min",
        "re-packed" if app.config["QUEUE_REPACK_POSITIONS"] else "gapped",
        app.config["QUEUE_DEFAULT_SERVICE_MINUTES"],
    )

    debug = os.environ.get("FLASK_DEBUG", "0").lower() in {"1", "true", "yes"}
    app.run(host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", 5000)), debug=debug)


if __name__ == "__main__":
    main()

import argparse
import logging
import signal
import sys
from dataclasses import replace

from flask import Flask

from .config import Settings, parse_resource_names, settings
from .registry import TargetResourceRegistry
from .routes import create_routes

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("toleration-webhook")


def create_app(registry: TargetResourceRegistry) -> Flask:
    flask_app = Flask(__name__)
    flask_app.register_blueprint(create_routes(registry))
    return flask_app


# Configured from the environment at import so WSGI servers (gunicorn) can load `app`
registry = TargetResourceRegistry(settings.target_resources)
app = create_app(registry)


def parse_args(argv: list[str] | None, defaults: Settings) -> Settings:
    parser = argparse.ArgumentParser(
        description="Admission webhook adding tolerations for requested extended resources"
    )
    parser.add_argument(
        "--port", type=int, default=defaults.port, help="webhook server port"
    )
    parser.add_argument(
        "--tls-cert-file",
        default=defaults.tls_cert_file,
        help="x509 certificate file for TLS connections",
    )
    parser.add_argument(
        "--tls-key-file",
        default=defaults.tls_key_file,
        help="x509 private key file for TLS connections",
    )
    parser.add_argument(
        "--target-resource",
        action="append",
        default=[],
        help="extended resource whose pods get a matching toleration (repeatable)",
    )
    args = parser.parse_args(argv)

    target_resources = defaults.target_resources
    if args.target_resource:
        target_resources = parse_resource_names(args.target_resource)

    return replace(
        defaults,
        port=args.port,
        tls_cert_file=args.tls_cert_file,
        tls_key_file=args.tls_key_file,
        target_resources=target_resources,
    )


def _handle_shutdown(signum, frame):
    log.info("OS shutdown signal received (%s)...", signal.Signals(signum).name)
    sys.exit(0)


def main(argv: list[str] | None = None) -> None:
    resolved = parse_args(argv, settings)

    # Must be complete before the listener accepts connections
    registry.configure(resolved.target_resources)
    if not registry:
        log.warning("No target resources configured; webhook will not mutate or deny pods")

    signal.signal(signal.SIGTERM, _handle_shutdown)

    log.info("Starting toleration webhook server on port %s...", resolved.port)
    app.run(
        host="0.0.0.0",
        port=resolved.port,
        ssl_context=(resolved.tls_cert_file, resolved.tls_key_file),
    )


if __name__ == "__main__":
    main()

# Main Entry Point - Vault backend
#
# Starts the local FastAPI backend with uvicorn. Settings come from the
# environment / .env (see core.config); CLI flags override them.

import argparse
import os
import sys

from . import __version__
from .core import EventSeverity, EventType, get_audit_logger, load_settings


def main():
    """Main entry point for Citadel OTP."""
    settings = load_settings()

    parser = argparse.ArgumentParser(
        description="Citadel OTP - encrypted TOTP authenticator vault backend",
    )

    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Backend host (default: {settings.host})"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Backend port (default: {settings.port})"
    )

    parser.add_argument(
        "--data-dir",
        default=None,
        help=f"Directory for vault and preference databases (default: {settings.data_dir})"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Citadel OTP v{__version__}"
    )

    args = parser.parse_args()

    if args.data_dir:
        # Read by load_settings() when the vault store is first created
        os.environ["CITADEL_OTP_DATA_DIR"] = args.data_dir

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Citadel OTP starting",
        details={"version": __version__, "host": args.host, "port": args.port},
    )

    print(f"Starting Citadel OTP backend on {args.host}:{args.port}...")
    print("Press Ctrl+C to stop")

    from .api.main import start_api_server

    try:
        start_api_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\nShutting down backend...")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="Citadel OTP backend stopped (user interrupt)"
        )
    except Exception as e:
        print(f"\n\nError: {str(e)}")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"Citadel OTP backend crashed: {str(e)}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Portal - Google sign-in gate for a server-rendered web app.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep portal imports lazy (inside functions) so `--help` works without the web stack installed.
#


def show_config() -> None:
    """Print which auth settings are present (never their values)."""
    from portal.auth.config import load_auth_config

    cfg = load_auth_config()
    print(f"identity provider: {'configured' if cfg.identity_enabled else 'NOT configured'}")
    print(f"  IDENTITY_URL: {cfg.identity_url or '-'}")
    print(f"  IDENTITY_ANON_KEY: {'set' if cfg.identity_anon_key else '-'}")
    print(f"session signing: {'configured' if cfg.session_secret else 'NOT configured'}")
    print(f"  session ttl: {cfg.session_ttl_seconds}s")
    print(f"  secure cookies: {cfg.cookie_secure}")
    print(f"public base url: {cfg.public_base_url or '(request origin)'}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the Portal web app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the app on :8080
  python main.py --serve

  # Check which auth settings are configured
  python main.py --show-config
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument(
        "--show-config", action="store_true", help="Print which auth settings are configured (no secrets)"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.show_config:
        show_config()
        return

    if args.serve:
        from portal.api.server import run

        run(host=args.host, port=args.port)
        return

    # No arguments provided
    parser.print_help()


if __name__ == "__main__":
    main()

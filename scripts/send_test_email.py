#!/usr/bin/env python3
"""
Dev helper: send a test email through a running Falak Mail Relay.

Builds a POST /relay/send body from the command line and prints the relay's
response (provider used, log id, or both providers' errors).

Usage
-----
# Basic, plain-text message to yourself via localhost:8000
python scripts/send_test_email.py --to you@example.com

# HTML body and a custom sender
python scripts/send_test_email.py --to you@example.com \\
    --html "<h1>Hello</h1>" --from billing@falak.me --sender-name Billing

# Target a deployed relay
python scripts/send_test_email.py --to you@example.com --url https://relay.falak.me

# Show the request body without sending
python scripts/send_test_email.py --to you@example.com --dry-run

Environment / .env
------------------
RELAY_API_KEY   Relay API key (fmr_...) issued from the dashboard (required
                unless --api-key is given).
RELAY_URL       Base URL of the relay (default: http://localhost:8000).
                Overridden by --url.

Variables are read from a .env file in the project root or backend/ if
present; values already in the environment win.
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


def _build_payload(args: argparse.Namespace) -> dict:
    payload = {
        "to": args.to,
        "subject": args.subject,
        "body": args.body,
    }
    optional = {
        "html": args.html,
        "from": args.from_email,
        "senderName": args.sender_name,
        "replyTo": args.reply_to,
    }
    payload.update({k: v for k, v in optional.items() if v})
    return payload


def _mask(api_key: str) -> str:
    if len(api_key) <= 12:
        return "****"
    return f"{api_key[:8]}...{api_key[-4:]}"


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    # scripts/ lives one level below the project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_email.py",
        description=textwrap.dedent("""\
            Send a test email through the Falak Mail Relay.

            Reads RELAY_API_KEY from the environment or a .env file in the
            project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_email.py --to you@example.com
              python scripts/send_test_email.py --to you@example.com --html "<b>Hi</b>"
              python scripts/send_test_email.py --to you@example.com --dry-run
        """),
    )
    parser.add_argument("--to", required=True, help="Recipient address")
    parser.add_argument(
        "--url",
        default=os.getenv("RELAY_URL", "http://localhost:8000"),
        help="Relay base URL (default: RELAY_URL or http://localhost:8000)",
    )
    parser.add_argument(
        "--subject",
        default="Falak Mail Relay test",
        help='Email subject (default: "Falak Mail Relay test")',
    )
    parser.add_argument(
        "--body",
        default="This is a test message sent by scripts/send_test_email.py.",
        help="Plain-text body",
    )
    parser.add_argument("--html", default=None, help="HTML body (default: body wrapped in <p>)")
    parser.add_argument(
        "--from",
        dest="from_email",
        default=None,
        help="Sender address (default: the relay's DEFAULT_FROM_EMAIL)",
    )
    parser.add_argument("--sender-name", default=None, help="Sender display name")
    parser.add_argument("--reply-to", default=None, help="Reply-To address")
    parser.add_argument(
        "--api-key",
        default=None,
        metavar="KEY",
        help="Override the relay API key. Defaults to RELAY_API_KEY env var.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the request body without sending it.",
    )

    args = parser.parse_args()

    api_key = args.api_key or os.getenv("RELAY_API_KEY", "")
    if not api_key and not args.dry_run:
        print(
            "ERROR: No relay API key found.\n"
            "Set RELAY_API_KEY in your environment or .env file, "
            "or pass --api-key.",
            file=sys.stderr,
        )
        return 1

    payload = _build_payload(args)
    endpoint = f"{args.url.rstrip('/')}/relay/send"

    print(f"Endpoint : {endpoint}")
    print(f"API key  : {_mask(api_key) if api_key else '(none)'}")
    print(f"To       : {args.to}")
    print(f"Subject  : {args.subject}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    try:
        response = httpx.post(
            endpoint,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=args.timeout,
        )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the relay running? Start it with:\n"
            "  cd backend && source .venv/bin/activate && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())

"""Print a fresh VAPID key pair as environment-variable lines.

Usage::

    countdown-push-vapid >> .env
    countdown-push-vapid --subject mailto:ops@example.com
"""

import argparse

from countdown_push.core.notification.vapid import generate_vapid_keys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a VAPID key pair for Web Push")
    parser.add_argument(
        "--subject",
        default="mailto:admin@yourdomain.example",
        help="Contact claim to emit alongside the keys (mailto: or https: URL)",
    )
    args = parser.parse_args(argv)

    keys = generate_vapid_keys()
    print("# VAPID keys (copy these to your .env or secret store)")
    print(f"COUNTDOWN_Push_VapidPublicKey={keys['public_key']}")
    print(f"COUNTDOWN_Push_VapidPrivateKey={keys['private_key']}")
    print(f"COUNTDOWN_Push_VapidSubject={args.subject}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

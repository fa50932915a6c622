"""
Grant or revoke the admin claim for a user.

    python set_admin.py <uid> [--revoke]

The user must sign in again before the new claim shows up in their token.
"""

import argparse
import logging
import sys

import config
from errors import ServiceError
from identity import IdentityProvider

logger = logging.getLogger("set_admin")


def main(argv=None, provider: IdentityProvider = None) -> int:
    parser = argparse.ArgumentParser(description="Set the admin claim on a user")
    parser.add_argument("uid", help="identity provider user id")
    parser.add_argument("--revoke", action="store_true", help="remove the admin claim instead")
    args = parser.parse_args(argv)

    provider = provider or IdentityProvider(config.FIREBASE_PROJECT_ID, config.GOOGLE_APPLICATION_CREDENTIALS)
    provider.initialize()
    try:
        provider.set_admin(args.uid, not args.revoke)
    except ServiceError as e:
        logger.error("Could not update %s: %s", args.uid, e.message)
        return 1
    finally:
        provider.close()

    logger.info("Admin claim %s for %s", "revoked" if args.revoke else "granted", args.uid)
    return 0


if __name__ == "__main__":
    config.configure_logging()
    sys.exit(main())

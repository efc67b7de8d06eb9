"""
Command line entry point for LDAP Reconcile.

Wires configuration, logging, the directory client and the authorization
service stores together and runs one debug/administration operation,
printing its result as JSON.
"""

import sys
import json
import logging
import argparse
from typing import Any, Optional, List

from ldap_reconcile.config import LDAPConfigProvider
from ldap_reconcile.debug import LDAPDebugService
from ldap_reconcile.errors import (
    ConfigurationError,
    NotFoundError,
    ReconcileError,
    RefusedOperation,
    UpstreamError,
    ValidationError,
)
from ldap_reconcile.logging_setup import setup_logging
from ldap_reconcile.stores.rest import RestStoreClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_NOT_FOUND = 3
EXIT_REFUSED = 4
EXIT_UPSTREAM = 5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='LDAP debug and user sync tool')
    parser.add_argument('--config', '-c', help='Path to configuration file')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('status', help='Check availability of the configured LDAP servers')
    user_parser = subparsers.add_parser('user', help='Show how a directory user maps onto organizations and teams')
    user_parser.add_argument('username')
    sync_parser = subparsers.add_parser('sync', help='Sync one internal user with the directory')
    sync_parser.add_argument('user_id', type=int)
    subparsers.add_parser('reload', help='Reload the LDAP configuration')

    return parser


def exit_code_for(error: ReconcileError) -> int:
    """Map an error onto the process exit code."""
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIGURATION
    if isinstance(error, (NotFoundError, ValidationError)):
        return EXIT_NOT_FOUND
    if isinstance(error, RefusedOperation):
        return EXIT_REFUSED
    if isinstance(error, UpstreamError):
        return EXIT_UPSTREAM
    return EXIT_UNEXPECTED


def error_payload(error: ReconcileError) -> dict:
    payload = {'message': error.message, 'status': error.status_code}
    if error.cause is not None:
        payload['error'] = str(error.cause)
    return payload


def run_command(service: LDAPDebugService, args: argparse.Namespace) -> Any:
    """Run the selected operation and return a JSON-serializable result."""
    if args.command == 'status':
        return [status.to_dict() for status in service.get_status()]
    if args.command == 'user':
        return service.get_user(args.username).to_dict()
    if args.command == 'sync':
        return service.sync_user(args.user_id).to_dict()
    if args.command == 'reload':
        service.reload_config()
        return {'message': 'LDAP config reloaded'}
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)

    provider = LDAPConfigProvider(args.config)
    store = None
    try:
        provider.get()
        setup_logging(provider.raw.get('logging', {}))
        store = RestStoreClient(provider.raw.get('store', {}))
        service = LDAPDebugService(
            config_provider=provider,
            org_store=store,
            user_store=store,
            team_store=store,
            error_handling=provider.raw.get('error_handling', {})
        )
        result = run_command(service, args)
    except ReconcileError as e:
        logger.error(f"{args.command} failed: {e.message}" + (f" ({e.cause})" if e.cause else ''))
        print(json.dumps(error_payload(e), indent=2))
        return exit_code_for(e)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(json.dumps({'message': 'Unexpected error', 'error': str(e)}, indent=2))
        return EXIT_UNEXPECTED
    finally:
        if store is not None:
            store.close_connection()

    print(json.dumps(result, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

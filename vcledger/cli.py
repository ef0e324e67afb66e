"""
vcledger Command Line Interface.

Provides commands for generating issuer keys, managing issuers and requests,
issuing and verifying credentials, and running the API server.
"""

import argparse
import dataclasses
import json
import logging
import sys

from vcledger.config import Settings, print_config
from vcledger.exceptions import VCLedgerError
from vcledger.keys import DEFAULT_CURVE, KEY_TYPES, dump_keypair, generate_keypair
from vcledger.service import Services, build_services


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line overrides applied."""
    settings = Settings.from_env()
    overrides = {}
    if getattr(args, 'data_dir', None):
        overrides['data_dir'] = args.data_dir
    if getattr(args, 'chain_id', None) is not None:
        overrides['chain_id'] = args.chain_id
    return dataclasses.replace(settings, **overrides) if overrides else settings


def open_services(args: argparse.Namespace) -> Services:
    return build_services(load_settings(args))


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def cmd_gen_keys(args: argparse.Namespace) -> int:
    """Generate an issuer key pair."""
    try:
        pair = generate_keypair(args.curve, kid=args.kid)
    except VCLedgerError as e:
        print(f"Error generating keys: {e}", file=sys.stderr)
        return 1

    if args.out:
        dump_keypair(pair, args.out)
        print(f"Wrote {pair.alg} key pair to {args.out}")
        print(f"kid: {pair.kid}")
    else:
        _print_json(pair.to_dict())
    return 0


def cmd_create_issuer(args: argparse.Namespace) -> int:
    """Create a managed issuer."""
    services = open_services(args)
    try:
        issuer = services.directory.create_managed_issuer(
            args.issuer_id, address=args.address, curve=args.curve
        )
    except VCLedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    _print_json(issuer.public_view())
    return 0


def cmd_list_issuers(args: argparse.Namespace) -> int:
    """List registered issuers."""
    services = open_services(args)
    issuers = services.directory.list_issuers()
    if args.json:
        _print_json([i.public_view() for i in issuers])
        return 0
    if not issuers:
        print("No issuers registered")
    for issuer in issuers:
        kind = "managed" if issuer.managed else "external"
        print(f"{issuer.issuer_id:<20} {kind:<9} {issuer.did}")
    return 0


def cmd_request(args: argparse.Namespace) -> int:
    """Record an issue request on behalf of a holder."""
    try:
        claims = json.loads(args.claims) if args.claims else {}
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON claims: {e}", file=sys.stderr)
        return 1

    services = open_services(args)
    try:
        request = services.ledger.create(
            args.holder, args.issuer_id, claims, credential_type=args.type
        )
    except VCLedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    _print_json(request.to_dict())
    return 0


def cmd_issue(args: argparse.Namespace) -> int:
    """Sign the credential for a pending request."""
    services = open_services(args)
    try:
        published, vc_jwt = services.signer.issue(args.request_id)
    except VCLedgerError as e:
        print(f"Error issuing credential: {e}", file=sys.stderr)
        return 1

    if args.json:
        _print_json({"vcJwt": vc_jwt, "published": published.to_dict()})
    else:
        print(vc_jwt)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a VC-JWT against the registered issuers."""
    services = open_services(args)
    result = services.verifier.verify(args.token)

    if args.json:
        _print_json(result.to_dict())
    elif result.ok:
        subject = (result.payload.get("vc") or {}).get("credentialSubject", {})
        print("✅ VALID")
        print(f"   Issuer:  {result.issuer_id} ({result.issuer_did})")
        print(f"   Subject: {result.payload.get('sub')}")
        print(f"   Claims:  {json.dumps(subject)}")
    else:
        print(f"❌ INVALID: {result.reason}")
    return 0 if result.ok else 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API server."""
    from vcledger.server import main as serve

    serve(host=args.host, port=args.port, settings=load_settings(args))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the effective configuration."""
    print_config(load_settings(args))
    return 0


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='vcledger',
        description='vcledger CLI - issue and verify W3C Verifiable Credentials as JWTs'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')
    parser.add_argument('--data-dir', help='Directory holding the JSON collections')
    parser.add_argument('--chain-id', type=int, help='EIP-155 chain id for new DIDs')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # gen-keys command
    p_keys = subparsers.add_parser('gen-keys', help='Generate an issuer key pair')
    p_keys.add_argument('--curve', default=DEFAULT_CURVE, choices=sorted(KEY_TYPES),
                        help='Key curve (default: secp256k1)')
    p_keys.add_argument('--out', help='Write {publicJwk, privateJwk} to this file')
    p_keys.add_argument('--kid', help='Key id (defaults to the JWK thumbprint)')

    # create-issuer command
    p_create = subparsers.add_parser('create-issuer', help='Create a managed issuer')
    p_create.add_argument('issuer_id', help='Issuer id')
    p_create.add_argument('--address', help='Account address (random if omitted)')
    p_create.add_argument('--curve', default=DEFAULT_CURVE, choices=sorted(KEY_TYPES))

    # list-issuers command
    p_list = subparsers.add_parser('list-issuers', help='List registered issuers')
    p_list.add_argument('--json', action='store_true', help='Output as JSON')

    # request command
    p_request = subparsers.add_parser('request', help='Request a credential for a holder')
    p_request.add_argument('holder', help='Holder account address')
    p_request.add_argument('issuer_id', help='Issuer id')
    p_request.add_argument('--claims', help='Claims as a JSON object')
    p_request.add_argument('--type', help='Extra credential type')

    # issue command
    p_issue = subparsers.add_parser('issue', help='Issue the credential for a request')
    p_issue.add_argument('request_id', help='Request id')
    p_issue.add_argument('--json', action='store_true', help='Output as JSON')

    # verify command
    p_verify = subparsers.add_parser('verify', help='Verify a VC-JWT')
    p_verify.add_argument('token', help='The VC-JWT to verify')
    p_verify.add_argument('--json', action='store_true', help='Output as JSON')

    # serve command
    p_serve = subparsers.add_parser('serve', help='Run the API server')
    p_serve.add_argument('--host', help='Bind address')
    p_serve.add_argument('--port', type=int, help='Bind port')

    subparsers.add_parser('config', help='Show effective configuration')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    commands = {
        'gen-keys': cmd_gen_keys,
        'create-issuer': cmd_create_issuer,
        'list-issuers': cmd_list_issuers,
        'request': cmd_request,
        'issue': cmd_issue,
        'verify': cmd_verify,
        'serve': cmd_serve,
        'config': cmd_config,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0
    return command(args)


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
"""
BerryMX command line
~~~~~~~~~~~~~~~~~~~~

``berrymx serve``    start the API server
``berrymx message``  print the canonical message for a request
``berrymx sign``     sign a request with ssh-keygen and print the auth headers
"""
import sys
import json
import time
import argparse

from berrymx.auth.signing import SigningError, SshKeygenSigner, build_signed_message, sign_request
from berrymx.core.settings import Settings


def _read_body(args) -> bytes:
    if args.body_file:
        if args.body_file == "-":
            return sys.stdin.buffer.read()
        with open(args.body_file, "rb") as f:
            return f.read()
    return (args.data or "").encode("utf-8")


def _add_request_args(parser):
    parser.add_argument('method', help='HTTP method, e.g. PUT')
    parser.add_argument('path', help='Request path, e.g. /api/projects/<id>')
    parser.add_argument('--data', help='Request body as a string')
    parser.add_argument('--body-file', help='Read the request body from a file ("-" for stdin)')
    parser.add_argument('--timestamp', help='Unix seconds (defaults to now)')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='berrymx', description='BerryMX content API')
    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Start the API server')
    serve.add_argument('--host', default=None, help='Host to bind to')
    serve.add_argument('--port', type=int, default=None, help='Port to bind to')
    serve.add_argument('--reload', action='store_true', help='Enable auto-reload')

    message = sub.add_parser('message', help='Print the canonical signed message')
    _add_request_args(message)

    sign = sub.add_parser('sign', help='Sign a request with ssh-keygen')
    _add_request_args(sign)
    sign.add_argument('--key', required=True, help='SSH private key file')
    sign.add_argument('--key-id', required=True, help='Identity listed in allowed_signers')
    sign.add_argument('--namespace', default=None, help='Signature namespace (defaults to SSH_NAMESPACE)')
    sign.add_argument('--json', action='store_true', help='Print headers as JSON')

    return parser.parse_args(argv)


def serve(args):
    # uvicorn is only needed for serve
    import uvicorn
    from berrymx.core.settings import resolve_config

    config = resolve_config()
    uvicorn.run(
        "berrymx.api.app:create_app",
        factory=True,
        host=args.host or config.host,
        port=args.port or config.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )


def main(argv=None):
    args = parse_args(argv)

    if args.command == 'serve':
        serve(args)
        return 0

    timestamp = args.timestamp or str(int(time.time()))
    body = _read_body(args)

    if args.command == 'message':
        sys.stdout.write(build_signed_message(args.method, args.path, timestamp, body))
        return 0

    signer = SshKeygenSigner(args.key, namespace=args.namespace or Settings().SSH_NAMESPACE)
    try:
        headers = sign_request(signer, args.key_id, args.method, args.path, body, timestamp)
    except SigningError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(headers, indent=2))
    else:
        for name, value in headers.items():
            print(f"{name}: {value}")
    return 0


if __name__ == '__main__':
    sys.exit(main())

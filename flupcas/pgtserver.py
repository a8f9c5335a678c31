# Copyright 2018 Allan Saddi <allan@saddi.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
CAS PGT (proxy-granting ticket) callback server.

CAS hands PGTs to an HTTPS callback URL, keyed by the PGTIOU it also
returns to the application during ticket validation. This server keeps
those PGTs and trades them for proxy tickets when an application asks:

    GET <pgt_url>?pgtIou=PGTIOU-...&pgtId=PGT-...      (from CAS)
    GET <pgt_url>/getProxyTicket?pgtiou=...&service=... (from the app)

It is normally run as its own process, and several applications may share
one.
"""

import argparse
import logging
import os
import socketserver
import ssl
import sys
import tempfile
import threading
import time

from urllib.parse import parse_qsl, urlsplit
from wsgiref.simple_server import WSGIServer, WSGIRequestHandler, make_server

from ._casclient import CASClient
from ._errors import ConfigurationError, ProxyTicketError


__all__ = ['PGTStore',
           'PGTCallbackApplication',
           'make_pgt_server',
           'main']


DEFAULT_TTL = 300

log = logging.getLogger(__name__)


class PGTStore(object):
    """Thread-safe PGTIOU -> PGT map. Entries expire after ttl seconds."""

    def __init__(self, ttl=DEFAULT_TTL, clock=time.time):
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._tickets = {}

    def __len__(self):
        with self._lock:
            return len(self._tickets)

    def put(self, pgtiou, pgt):
        now = self._clock()
        with self._lock:
            self._purge(now)
            self._tickets[pgtiou] = (pgt, now)

    def get(self, pgtiou):
        now = self._clock()
        with self._lock:
            entry = self._tickets.get(pgtiou)
            if entry is None:
                return None
            pgt, stored_at = entry
            if self._ttl is not None and stored_at + self._ttl < now:
                del self._tickets[pgtiou]
                return None
            return pgt

    def _purge(self, now):
        if self._ttl is None:
            return
        expired = [k for k, (_, stored_at) in self._tickets.items()
                   if stored_at + self._ttl < now]
        for k in expired:
            del self._tickets[k]


class PGTCallbackApplication(object):

    def __init__(self, cas_url, store=None, client=None, ssl_ca=None):
        if store is None:
            store = PGTStore()
        self._store = store

        if client is None:
            client = CASClient(cas_url, ssl_ca=ssl_ca)
        self._client = client

    def __call__(self, environ, start_response):
        path = environ.get('PATH_INFO', '')
        params = dict(parse_qsl(environ.get('QUERY_STRING', '')))

        if path.rstrip('/').endswith('/getProxyTicket'):
            return self._proxy_ticket(start_response, params)

        pgtiou, pgt = params.get('pgtIou'), params.get('pgtId')
        if pgtiou and pgt:
            self._store.put(pgtiou, pgt)
            log.info('Received PGT for %s', pgtiou)

        # Without parameters this is CAS checking that we're reachable.
        return self._respond(start_response, '200 OK', '')

    def _proxy_ticket(self, start_response, params):
        pgtiou, service = params.get('pgtiou'), params.get('service')
        if not pgtiou or not service:
            return self._respond(start_response, '400 Bad Request',
                                 'pgtiou and service are required\n')

        pgt = self._store.get(pgtiou)
        if pgt is None:
            log.warning('Unknown or expired PGTIOU %s', pgtiou)
            return self._respond(start_response, '404 Not Found',
                                 'Unknown PGTIOU\n')

        try:
            ticket = self._client.request_proxy_ticket(pgt, service)
        except ProxyTicketError as e:
            log.warning('Proxy ticket for %s failed: %s', service, e)
            return self._respond(start_response, '502 Bad Gateway',
                                 '%s\n' % e)

        return self._respond(start_response, '200 OK', ticket)

    def _respond(self, start_response, status, body):
        body = body.encode('utf-8')
        start_response(status, [('Content-Type', 'text/plain'),
                                ('Content-Length', str(len(body)))])
        return [body]


class _ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingRequestHandler(WSGIRequestHandler):

    def log_message(self, format, *args):
        log.debug('%s - %s', self.address_string(), format % args)


def _load_cert_chain(context, cert, key, ca):
    if not ca:
        context.load_cert_chain(cert, key)
        return

    if isinstance(ca, str):
        ca = [ca]
    # SSLContext only takes the chain from the certificate file itself
    fd, chain = tempfile.mkstemp(suffix='.pem')
    try:
        with os.fdopen(fd, 'w') as out:
            for path in [cert] + list(ca):
                with open(path) as f:
                    data = f.read()
                out.write(data)
                if not data.endswith('\n'):
                    out.write('\n')
        context.load_cert_chain(chain, key)
    finally:
        os.unlink(chain)


def make_pgt_server(cas_url, pgt_url, cert, key, ca=None, host=None,
                    store=None, cas_ca=None):
    """
    Builds a threaded HTTPS server for the PGT callback application,
    listening on the host/port of pgt_url (host overrides the bind
    address).

    ca - Optional CA / intermediate certificate file (or list of files)
      presented after cert as the server's chain.

    cas_ca - Optional CA bundle used to verify the CAS server when
      requesting proxy tickets.
    """
    parts = urlsplit(pgt_url)
    if parts.scheme != 'https':
        raise ConfigurationError('pgt_url must be an https URL')

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    _load_cert_chain(context, cert, key, ca)

    app = PGTCallbackApplication(cas_url, store=store, ssl_ca=cas_ca)
    server = make_server(host or parts.hostname, parts.port or 443, app,
                         server_class=_ThreadingWSGIServer,
                         handler_class=_LoggingRequestHandler)
    server.socket = context.wrap_socket(server.socket, server_side=True)

    return server


def main(argv=None):
    parser = argparse.ArgumentParser(description='CAS PGT callback server')
    parser.add_argument('--cas-url', required=True,
                        help='CAS server base URL')
    parser.add_argument('--pgt-url', required=True,
                        help='externally reachable https URL of this server')
    parser.add_argument('--cert', required=True,
                        help='server certificate (PEM, chain allowed)')
    parser.add_argument('--key', required=True,
                        help='server certificate key (PEM)')
    parser.add_argument('--ca', action='append',
                        help='CA or intermediate certificate for the server chain '
                             '(may be repeated)')
    parser.add_argument('--cas-ca',
                        help='CA bundle for verifying the CAS server')
    parser.add_argument('--host', help='bind address')
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.verbose and logging.DEBUG or logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        server = make_pgt_server(args.cas_url, args.pgt_url, args.cert,
                                 args.key, ca=args.ca, host=args.host,
                                 cas_ca=args.cas_ca)
    except ConfigurationError as e:
        parser.error(str(e))

    log.info('PGT callback server listening on %s', args.pgt_url)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0


if __name__ == '__main__':
    sys.exit(main())

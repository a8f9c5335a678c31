from unittest import mock

import pytest
from wsgiref.util import setup_testing_defaults

from flupcas import CASClient, ConfigurationError, ProxyTicketError
from flupcas.pgtserver import PGTCallbackApplication, PGTStore, make_pgt_server


class FakeClock(object):

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def call(app, path='/', query=''):
    environ = {'PATH_INFO': path, 'QUERY_STRING': query}
    setup_testing_defaults(environ)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured['status'] = status

    body = b''.join(app(environ, start_response))
    return captured['status'], body


def make_app(store=None):
    client = mock.Mock(spec=CASClient)
    client.request_proxy_ticket.return_value = 'PT-1'
    return PGTCallbackApplication('https://cas.example.com/cas',
                                  store=store if store is not None else PGTStore(),
                                  client=client)


def test_store_expires_entries():
    clock = FakeClock()
    store = PGTStore(ttl=60, clock=clock)
    store.put('PGTIOU-1', 'PGT-1')
    assert store.get('PGTIOU-1') == 'PGT-1'

    clock.now += 61
    assert store.get('PGTIOU-1') is None
    assert len(store) == 0


def test_store_purges_on_put():
    clock = FakeClock()
    store = PGTStore(ttl=60, clock=clock)
    store.put('PGTIOU-1', 'PGT-1')
    clock.now += 61
    store.put('PGTIOU-2', 'PGT-2')
    assert len(store) == 1


def test_reachability_probe():
    assert call(make_app()) == ('200 OK', b'')


def test_callback_stores_pgt():
    store = PGTStore()
    status, _ = call(make_app(store), '/pgt', 'pgtIou=PGTIOU-1&pgtId=PGT-1')
    assert status == '200 OK'
    assert store.get('PGTIOU-1') == 'PGT-1'


def test_proxy_ticket_lookup():
    store = PGTStore()
    store.put('PGTIOU-1', 'PGT-1')
    app = make_app(store)

    status, body = call(app, '/pgt/getProxyTicket',
                        'pgtiou=PGTIOU-1&service=http%3A%2F%2Fapi%2F')

    assert (status, body) == ('200 OK', b'PT-1')
    app._client.request_proxy_ticket.assert_called_once_with('PGT-1',
                                                             'http://api/')


def test_proxy_ticket_unknown_pgtiou():
    status, _ = call(make_app(), '/getProxyTicket',
                     'pgtiou=PGTIOU-X&service=http%3A%2F%2Fapi%2F')
    assert status == '404 Not Found'


def test_proxy_ticket_missing_params():
    status, _ = call(make_app(), '/getProxyTicket', 'pgtiou=PGTIOU-1')
    assert status == '400 Bad Request'


def test_proxy_ticket_cas_failure():
    store = PGTStore()
    store.put('PGTIOU-1', 'PGT-1')
    app = make_app(store)
    app._client.request_proxy_ticket.side_effect = ProxyTicketError('nope')

    status, body = call(app, '/getProxyTicket',
                        'pgtiou=PGTIOU-1&service=http%3A%2F%2Fapi%2F')

    assert status == '502 Bad Gateway'
    assert body == b'nope\n'


def test_server_requires_https():
    with pytest.raises(ConfigurationError):
        make_pgt_server('https://cas.example.com/cas',
                        'http://pgt.example.com/', 'cert.pem', 'key.pem')


@mock.patch('flupcas.pgtserver.make_server')
@mock.patch('flupcas.pgtserver.ssl.SSLContext')
def test_server_presents_ca_chain(mock_context_class, mock_make_server,
                                  tmp_path):
    cert = tmp_path / 'cert.pem'
    cert.write_text('SERVER CERT')
    intermediate = tmp_path / 'intermediate.pem'
    intermediate.write_text('INTERMEDIATE\n')
    root = tmp_path / 'root.pem'
    root.write_text('ROOT\n')

    loaded = {}

    def load_cert_chain(certfile, keyfile):
        with open(certfile) as f:
            loaded['chain'] = f.read()
        loaded['key'] = keyfile

    context = mock_context_class.return_value
    context.load_cert_chain.side_effect = load_cert_chain

    server = make_pgt_server('https://cas.example.com/cas',
                             'https://pgt.example.com:8443/pgt',
                             str(cert), 'key.pem',
                             ca=[str(intermediate), str(root)],
                             cas_ca='cas-ca.pem')

    assert loaded == {'chain': 'SERVER CERT\nINTERMEDIATE\nROOT\n',
                      'key': 'key.pem'}
    host, port, app = mock_make_server.call_args[0]
    assert (host, port) == ('pgt.example.com', 8443)
    assert app._client._tls['verify'] == 'cas-ca.pem'
    assert server.socket is context.wrap_socket.return_value


@mock.patch('flupcas.pgtserver.make_server')
@mock.patch('flupcas.pgtserver.ssl.SSLContext')
def test_server_without_ca_loads_cert_directly(mock_context_class,
                                              mock_make_server):
    make_pgt_server('https://cas.example.com/cas', 'https://pgt.example.com/',
                    'cert.pem', 'key.pem')
    mock_context_class.return_value.load_cert_chain.assert_called_once_with(
        'cert.pem', 'key.pem')
    assert mock_make_server.call_args[0][1] == 443

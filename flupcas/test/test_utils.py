from urllib.parse import quote

from wsgiref.util import setup_testing_defaults

from flupcas import CASRequest, build_service_url
from flupcas._utils import get_original_url, strip_query_params


def make_environ(path='/', query='', **extra):
    environ = {'PATH_INFO': path, 'QUERY_STRING': query}
    environ.update(extra)
    setup_testing_defaults(environ)
    return environ


def test_original_url_from_environ():
    environ = make_environ('/a b', 'x=1', HTTP_HOST='app.example.com')
    assert get_original_url(environ) == 'http://app.example.com/a%20b?x=1'


def test_original_url_without_host_header_uses_server_port():
    environ = make_environ('/p', SERVER_NAME='app.example.com',
                           SERVER_PORT='8080')
    del environ['HTTP_HOST']
    assert get_original_url(environ) == 'http://app.example.com:8080/p'


def test_request_from_environ_collects_headers():
    environ = make_environ('/p', 'ticket=ST-1&_cas_retry=5',
                           HTTP_HOST='app.example.com',
                           HTTP_X_FORWARDED_PROTO='https')
    request = CASRequest.from_environ(environ)
    assert request.method == 'GET'
    assert request.headers['x-forwarded-proto'] == 'https'
    assert request.headers['host'] == 'app.example.com'
    assert request.protocol == 'http'
    assert request.ticket == 'ST-1'
    assert request.retry_token == '5'


def test_empty_ticket_counts_as_absent():
    assert CASRequest('GET', '/p?ticket=').ticket is None


def test_service_url_strips_ticket():
    request = CASRequest('GET', '/page?a=1&ticket=ST-1&b=2',
                         {'Host': 'app.example.com'}, 'http')
    assert build_service_url(request) == 'http://app.example.com/page?a=1&b=2'


def test_service_url_without_query():
    request = CASRequest('GET', '/page?ticket=ST-1',
                         {'Host': 'app.example.com'}, 'http')
    assert build_service_url(request) == 'http://app.example.com/page'


def test_service_url_keeps_original_encoding_and_order():
    request = CASRequest('GET', '/s?q=a%20b&z=1&ticket=ST-1&a=%2F',
                         {'host': 'app.example.com'}, 'http')
    assert build_service_url(request) == \
        'http://app.example.com/s?q=a%20b&z=1&a=%2F'


def test_service_url_honors_proxy_headers():
    request = CASRequest('GET', '/internal/page?ticket=ST-1', {
        'host': 'backend:8000',
        'x-forwarded-proto': 'https',
        'x-forwarded-host': 'www.example.com',
        'x-proxied-request-uri': '/public/page',
    }, 'http')
    assert build_service_url(request) == 'https://www.example.com/public/page'


def test_service_url_proxied_protocol_fallback():
    request = CASRequest('GET', '/p', {'host': 'h',
                                       'x-proxied-protocol': 'https'}, 'http')
    assert build_service_url(request) == 'https://h/p'


def test_service_url_first_forwarded_value_wins():
    request = CASRequest('GET', '/p', {'host': 'h',
                                       'x-forwarded-proto': 'https, http'})
    assert build_service_url(request) == 'https://h/p'


def test_service_url_defaults_to_http():
    request = CASRequest('GET', '/p', {'host': 'h'})
    assert build_service_url(request) == 'http://h/p'


def test_service_url_is_idempotent():
    request = CASRequest('GET', '/p?x=1&ticket=ST-1',
                         {'host': 'app.example.com',
                          'x-forwarded-proto': 'https'}, 'http')
    service = build_service_url(request)
    again = build_service_url(CASRequest('GET', service))
    assert again == service
    assert build_service_url(CASRequest('GET', again)) == service


def test_strip_query_params_matches_decoded_names():
    query = 'a=1&%74icket=ST-1&b=' + quote('x y')
    assert strip_query_params(query, ('ticket',)) == 'a=1&b=x%20y'


def test_service_url_ignores_query_in_proxied_request_uri():
    request = CASRequest('GET', '/internal?a=1&ticket=ST-1', {
        'host': 'www.example.com',
        'x-proxied-request-uri': '/public/page?a=1&ticket=ST-1',
    }, 'https')
    assert build_service_url(request) == 'https://www.example.com/public/page?a=1'

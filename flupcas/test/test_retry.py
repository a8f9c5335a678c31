from flupcas import CASRequest
from flupcas._retry import current_window_token, has_retried, retry_url


def test_window_token_is_the_rounded_minute():
    assert current_window_token(1200.0) == 20
    assert current_window_token(1229.0) == 20
    assert current_window_token(1231.0) == 21


def test_window_token_never_decreases():
    tokens = [current_window_token(t) for t in range(0, 600, 7)]
    assert tokens == sorted(tokens)


def test_window_token_defaults_to_now():
    assert isinstance(current_window_token(), int)


def test_has_retried_matching_token():
    request = CASRequest('GET', '/p?_cas_retry=20&ticket=ST-1')
    assert has_retried(request, 20)


def test_has_retried_other_token():
    request = CASRequest('GET', '/p?_cas_retry=19&ticket=ST-1')
    assert not has_retried(request, 20)


def test_has_retried_without_marker():
    assert not has_retried(CASRequest('GET', '/p?ticket=ST-1'), 20)


def test_retry_url_replaces_ticket_in_place():
    request = CASRequest('GET', 'http://h/p?a=1&ticket=ST-1-x.y&b=2')
    assert retry_url(request, 20) == 'http://h/p?a=1&_cas_retry=20&b=2'


def test_retry_url_drops_earlier_marker():
    request = CASRequest('GET', 'http://h/p?_cas_retry=3&ticket=ST-1')
    assert retry_url(request, 20) == 'http://h/p?_cas_retry=20'


def test_retry_url_drops_trailing_marker():
    request = CASRequest('GET', '/p?ticket=ST-1&_cas_retry=3')
    assert retry_url(request, 20) == '/p?_cas_retry=20'


def test_retry_url_uses_public_origin_behind_proxy():
    request = CASRequest('GET', 'http://backend:8000/internal/page?ticket=ST-1', {
        'host': 'backend:8000',
        'x-forwarded-proto': 'https',
        'x-forwarded-host': 'www.example.com',
        'x-proxied-request-uri': '/public/page',
    }, 'http')
    assert retry_url(request, 20) == \
        'https://www.example.com/public/page?_cas_retry=20'


def test_retry_url_drops_fragment():
    request = CASRequest('GET', 'http://h/p?ticket=ST-1#top')
    assert retry_url(request, 20) == 'http://h/p?_cas_retry=20'

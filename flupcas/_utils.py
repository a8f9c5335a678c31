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

import random
import string

from urllib.parse import quote, unquote_plus, urlsplit, urlunsplit


__all__ = ['get_base_url',
           'get_original_url',
           'build_service_url',
           'split_query',
           'segment_name',
           'strip_query_params',
           'generate_nonce']


def get_base_url(environ):
    """Reconstructs request URL from environ, sans path info/query string."""
    url = environ['wsgi.url_scheme'] + '://'

    if environ.get('HTTP_HOST'):
        url += environ['HTTP_HOST']
    else:
        url += environ['SERVER_NAME']

        if environ['wsgi.url_scheme'] == 'https':
            if environ['SERVER_PORT'] != '443':
                url += ':' + environ['SERVER_PORT']
        else:
            if environ['SERVER_PORT'] != '80':
                url += ':' + environ['SERVER_PORT']

    url += quote(environ.get('SCRIPT_NAME', ''))

    return url


def get_original_url(environ):
    """Reconstructs request URL from environ."""
    url = get_base_url(environ)
    url += quote(environ.get('PATH_INFO', ''))
    if environ.get('QUERY_STRING'):
        url += '?' + environ['QUERY_STRING']

    return url


def split_query(query):
    """Splits a raw query string into its still-encoded segments."""
    return [seg for seg in query.split('&') if seg]


def segment_name(segment):
    return unquote_plus(segment.split('=', 1)[0])


def strip_query_params(query, names):
    """
    Removes every parameter in names from a raw query string. Surviving
    segments keep their original order and encoding.
    """
    return '&'.join([seg for seg in split_query(query)
                     if segment_name(seg) not in names])


def _first_header_value(value):
    # Proxy chains may append, e.g. "https, http"
    if value:
        return value.split(',')[0].strip()
    return value


def build_service_url(request):
    """
    Derives the CAS service URL for a CASRequest: the request URL with the
    ticket parameter removed, honoring reverse proxy headers.

    Running it again on its own output yields the same URL, which is what
    lets the CAS server match the service on the way back.
    """
    parts = urlsplit(request.url)
    headers = request.headers

    scheme = _first_header_value(headers.get('x-forwarded-proto')) or \
        headers.get('x-proxied-protocol') or \
        request.protocol or parts.scheme or 'http'
    host = _first_header_value(headers.get('x-forwarded-host')) or \
        headers.get('host') or parts.netloc
    # Proxies forwarding the full request URI may include its query
    path = (headers.get('x-proxied-request-uri') or '').split('?', 1)[0] or \
        parts.path

    return urlunsplit((scheme, host, path,
                       strip_query_params(parts.query, ('ticket',)), ''))


_noncechars = string.ascii_letters + string.digits + '-_'
_noncerand = random.SystemRandom()

def generate_nonce(length):
    return ''.join([_noncerand.choice(_noncechars) for _ in range(length)])

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

from collections import namedtuple

from urllib.parse import parse_qsl, urlsplit

from ._utils import get_original_url


__all__ = ['CASRequest']


RETRY_PARAM = '_cas_retry'


class CASRequest(namedtuple('CASRequest', 'method url headers protocol')):
    """
    Read-only view of an inbound request, as far as the CAS handshake
    cares about it.

    method - HTTP method.
    url - Original URL including the query string. May be absolute or
      just path + query.
    headers - Header names lower-cased, dash separated (e.g.
      'x-forwarded-host').
    protocol - The request's own scheme, if known.
    """
    __slots__ = ()

    def __new__(cls, method, url, headers=None, protocol=None):
        headers = dict((k.lower(), v) for k, v in (headers or {}).items())
        return super(CASRequest, cls).__new__(cls, method, url, headers,
                                              protocol)

    @classmethod
    def from_environ(cls, environ):
        headers = {}
        for key, value in environ.items():
            if key.startswith('HTTP_'):
                headers[key[5:].replace('_', '-').lower()] = value
        return cls(environ.get('REQUEST_METHOD', 'GET'),
                   get_original_url(environ),
                   headers,
                   environ.get('wsgi.url_scheme'))

    @property
    def query(self):
        return parse_qsl(urlsplit(self.url).query, keep_blank_values=True)

    def get_param(self, name, default=None):
        for key, value in self.query:
            if key == name:
                return value
        return default

    @property
    def ticket(self):
        return self.get_param('ticket') or None

    @property
    def retry_token(self):
        return self.get_param(RETRY_PARAM)

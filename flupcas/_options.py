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

from ._casclient import DEFAULT_TIMEOUT
from ._errors import ConfigurationError


__all__ = ['CASOptions']


_TRUE = ('1', 'true', 'yes', 'on')


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    return bool(value)


def _as_int(value):
    if value is None or value == '':
        return None
    return int(value)


class CASOptions(object):
    """
    CAS client configuration.

    cas_url - CAS server base URL (required), e.g.
      https://signin.example.com/cas

    pgt_url - Optional. URL of the PGT callback server.

    session_key - Name under which CAS information is kept in the session.

    property_map - Optional. Maps profile fields (id, displayName,
      givenName, familyName, middleName, emails) to CAS attribute names.

    pass_request - When true, the request is the first argument to the
      verify callable.

    ssl_cert, ssl_key, ssl_ca - Optional TLS material for talking to the
      CAS and PGT servers.

    logout_path - Optional. Path the middleware treats as "log out".

    logout_return_url - Optional. Where CAS sends the user after logout.

    casfailed_url - Optional. Where to send users whose login was rejected.

    app_id, global_ttl - Passed on to the AuthInfoService.
    """

    def __init__(self, cas_url=None, pgt_url=None, session_key='cas',
                 property_map=None, pass_request=False, ssl_cert=None,
                 ssl_key=None, ssl_ca=None, timeout=DEFAULT_TIMEOUT,
                 logout_path=None, logout_return_url=None,
                 casfailed_url=None, app_id=None, global_ttl=None):
        if not cas_url:
            raise ConfigurationError('CAS requires a cas_url option')

        self.cas_url = cas_url
        self.pgt_url = pgt_url or None
        self.session_key = session_key or 'cas'
        self.property_map = dict(property_map or {})
        self.pass_request = pass_request
        self.ssl_cert = ssl_cert
        self.ssl_key = ssl_key
        self.ssl_ca = ssl_ca
        self.timeout = timeout
        self.logout_path = logout_path
        self.logout_return_url = logout_return_url
        self.casfailed_url = casfailed_url
        self.app_id = app_id
        self.global_ttl = global_ttl

    @classmethod
    def from_mapping(cls, settings, prefix='cas.'):
        """
        Builds options from flat string settings, e.g. an ini section:

            cas.cas_url = https://signin.example.com/cas
            cas.pass_request = true
            cas.property_map.emails = defaultmail
        """
        kwargs = {}
        property_map = {}
        map_prefix = prefix + 'property_map.'
        for key, value in settings.items():
            if key.startswith(map_prefix):
                property_map[key[len(map_prefix):]] = value
            elif key.startswith(prefix):
                kwargs[key[len(prefix):]] = value

        if 'pass_request' in kwargs:
            kwargs['pass_request'] = _as_bool(kwargs['pass_request'])
        for name in ('timeout', 'global_ttl'):
            if name in kwargs:
                try:
                    kwargs[name] = _as_int(kwargs[name])
                except ValueError:
                    raise ConfigurationError('%s%s must be an integer' %
                                             (prefix, name))
        if kwargs.get('timeout') is None:
            kwargs.pop('timeout', None)
        if property_map:
            kwargs['property_map'] = property_map

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigurationError(str(e))

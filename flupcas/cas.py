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

import logging
import traceback
from collections import namedtuple
from collections.abc import Mapping

from urllib.parse import urlsplit, urlunsplit

from ._authinfo import AuthInfo, AuthInfoService
from ._casclient import CASClient
from ._errors import (ConfigurationError, ValidationError, ApplicationError,
                      NoSessionError, NotAuthenticatedError,
                      MissingProxyGrantError)
from ._options import CASOptions
from ._profile import map_profile
from ._request import CASRequest, RETRY_PARAM
from ._retry import current_window_token, has_retried, retry_url
from ._utils import build_service_url, generate_nonce, strip_query_params


__all__ = ['CASStrategy',
           'CASMiddleware',
           'Redirect',
           'Success',
           'Rejected',
           'Errored',
           'CAS_AUTH_INFO_KEY',
           'CAS_IDENTITY_KEY']


# Session keys
CAS_AUTH_INFO_KEY = 'cas.auth_info'

# environ keys
CAS_IDENTITY_KEY = 'flupcas.identity'

log = logging.getLogger(__name__)


# Outcomes of CASStrategy.authenticate(). Exactly one per request.
Redirect = namedtuple('Redirect', 'location status', defaults=(307,))
Success = namedtuple('Success', 'identity info username',
                     defaults=(None, None))
Rejected = namedtuple('Rejected', 'info')
Errored = namedtuple('Errored', 'error')


def _verdict(result, username):
    if isinstance(result, Rejected):
        return result
    if isinstance(result, Success):
        if not result.identity:
            return Rejected(result.info)
        if result.username is None:
            result = result._replace(username=username)
        return result
    if not result:
        return Rejected(None)
    return Success(result, None, username)


class CASStrategy(object):
    """
    The CAS login handshake, independent of any particular web framework.

    verify is called once the CAS server vouches for a ticket:

        verify(username, profile)

    or, with the pass_request option:

        verify(request, username, profile)

    It returns the application's identity for the user, Success(identity,
    info) to pass info along, or Rejected(info) to turn the login down. A
    false identity is a rejection too. Exceptions it raises are reported as
    Errored results.
    """

    name = 'cas'

    def __init__(self, options, verify, client=None):
        if isinstance(options, Mapping):
            options = CASOptions(**options)
        if not callable(verify):
            raise ConfigurationError('CAS requires a verify callable')

        self._options = options
        self._verify = verify

        if client is None:
            client = CASClient(options.cas_url, pgt_url=options.pgt_url,
                               ssl_cert=options.ssl_cert,
                               ssl_key=options.ssl_key,
                               ssl_ca=options.ssl_ca,
                               timeout=options.timeout)
        self._client = client

    @property
    def options(self):
        return self._options

    def authenticate(self, request, session=None, now=None):
        """
        Runs one step of the handshake for a CASRequest. Returns one of
        Redirect, Success, Rejected or Errored.

        session, if given, receives the CAS record (and PGTIOU) on success.
        """
        service = build_service_url(request)
        ticket = request.ticket

        if not ticket:
            return Redirect(self._client.login_url(service))

        try:
            outcome = self._client.validate(ticket, service)
        except ValidationError as e:
            token = current_window_token(now)
            if not has_retried(request, token):
                # Most likely a stale ticket left in the URL. Drop it and
                # go around again.
                log.info('CAS validation failed (%s), retrying without '
                         'ticket', e)
                return Redirect(retry_url(request, token))
            log.warning('CAS validation failed after retry: %s', e)
            return Rejected(e)

        return self._authenticated(request, session, outcome)

    def _authenticated(self, request, session, outcome):
        record = {}
        if self._options.pgt_url:
            record['PGTIOU'] = outcome.pgtiou
        if session is not None:
            session[self._options.session_key] = record
        elif record:
            log.warning('No session, PGTIOU for %s not kept', outcome.username)

        profile = map_profile(outcome.username, outcome.attributes,
                              self._options.property_map,
                              pgtiou=outcome.pgtiou)

        try:
            if self._options.pass_request:
                result = self._verify(request, outcome.username, profile)
            else:
                result = self._verify(outcome.username, profile)
        except Exception as e:
            log.exception('verify failed for %s', outcome.username)
            error = ApplicationError(str(e) or e.__class__.__name__)
            error.__cause__ = e
            return Errored(error)

        return _verdict(result, outcome.username)

    def get_proxy_ticket(self, session, target_service):
        """
        Gets a proxy ticket for target_service on behalf of the logged in
        user. Append it to the service URL as the ticket parameter.
        """
        if session is None:
            raise NoSessionError('Session is not found')
        record = session.get(self._options.session_key)
        if not record:
            raise NotAuthenticatedError('User is not authenticated with CAS')
        pgtiou = record.get('PGTIOU')
        if not pgtiou:
            raise MissingProxyGrantError(
                'PGTIOU token not found. Make sure the pgt_url option is '
                'correct, and the CAS server allows proxies.')

        return self._client.get_proxy_ticket(pgtiou, target_service)

    def logout_url(self, return_url=None):
        return self._client.logout_url(return_url)


def _default_verify(username, profile):
    return username


class CASMiddleware(object):
    """
    WSGI middleware requiring a CAS login for everything below it.

    Options may be given as a CASOptions instance or as keyword arguments.
    Without verify, the CAS username is the identity.
    """

    def __init__(self, application, verify=None, options=None,
                 auth_info_service=None, strategy=None, **kwargs):
        self._application = application

        if options is None:
            options = CASOptions(**kwargs)
        self._options = options

        if strategy is None:
            strategy = CASStrategy(options, verify or _default_verify)
        self._strategy = strategy

        if auth_info_service is None:
            app_id = options.app_id
            if app_id is None:
                app_id = generate_nonce(16)
            auth_info_service = AuthInfoService(app_id,
                                                global_ttl=options.global_ttl)
        self._auth_info_service = auth_info_service

    def __call__(self, environ, start_response):
        session = self._get_session(environ)

        if self._options.logout_path is not None and \
                environ.get('PATH_INFO', '') == self._options.logout_path:
            return self._logout(environ, start_response, session)

        if CAS_AUTH_INFO_KEY in session:
            # Possibly already authenticated
            auth_info = session[CAS_AUTH_INFO_KEY]
            if self._auth_info_service.is_valid(auth_info):
                auth_info = AuthInfo(*auth_info)
                environ['AUTH_TYPE'] = 'CAS'
                environ['REMOTE_USER'] = str(auth_info.username)
                environ[CAS_IDENTITY_KEY] = auth_info.identity
                return self._application(environ, start_response)

        # Not yet authenticated...

        request = CASRequest.from_environ(environ)
        result = self._strategy.authenticate(request, session)

        if isinstance(result, Redirect):
            self._save_session(environ)
            start_response('307 Temporary Redirect', [
                ('Location', result.location)
            ])
            return []
        elif isinstance(result, Success):
            # Validation succeeded, redirect back to app
            session[CAS_AUTH_INFO_KEY] = tuple(
                self._auth_info_service.issue(result.identity,
                                              result.username))
            self._save_session(environ)
            start_response('302 Moved Temporarily', [
                ('Location', self._return_url(request))
            ])
            return []
        elif isinstance(result, Rejected):
            self._save_session(environ)
            return self._casfailed(environ, start_response, result.info)
        else:
            error = result.error
            traceback.print_exception(type(error), error, error.__traceback__,
                                      file=environ['wsgi.errors'])
            start_response('500 Internal Server Error', [
                ('Content-Type', 'text/plain')
            ])
            return [b'Internal Server Error\n']

    @property
    def strategy(self):
        return self._strategy

    def get_proxy_ticket(self, environ, target_service):
        return self._strategy.get_proxy_ticket(self._get_session(environ),
                                               target_service)

    def _return_url(self, request):
        parts = urlsplit(build_service_url(request))
        query = strip_query_params(parts.query, (RETRY_PARAM,))
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ''))

    def _logout(self, environ, start_response, session):
        session.pop(CAS_AUTH_INFO_KEY, None)
        session.pop(self._options.session_key, None)
        self._save_session(environ)
        start_response('302 Moved Temporarily', [
            ('Location',
             self._strategy.logout_url(self._options.logout_return_url))
        ])
        return []

    def _get_session(self, environ):
        return environ['flup.session']()

    def _save_session(self, environ):
        pass

    def _casfailed(self, environ, start_response, info):
        if self._options.casfailed_url is not None:
            start_response('302 Moved Temporarily', [
                ('Location', self._options.casfailed_url)
                ])
            return []
        else:
            # Default failure notice
            message = 'CAS authentication failed'
            if info:
                message += ': %s' % info
            start_response('403 Forbidden', [('Content-Type', 'text/plain')])
            return [(message + '\n').encode('utf-8')]

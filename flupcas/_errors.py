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


__all__ = ['CASError',
           'ConfigurationError',
           'ValidationError',
           'ProxyTicketError',
           'SessionError',
           'NoSessionError',
           'NotAuthenticatedError',
           'MissingProxyGrantError',
           'ApplicationError']


class CASError(Exception):
    pass


class ConfigurationError(CASError):
    pass


class ValidationError(CASError):
    """
    Ticket rejected by the CAS server, or the validation exchange itself
    failed (network, HTTP status, unparsable response).

    code - CAS failure code (e.g. INVALID_TICKET) when the server sent one.
    """
    def __init__(self, message, code=None):
        super(ValidationError, self).__init__(message)
        self.code = code


class ProxyTicketError(CASError):
    pass


class SessionError(CASError):
    pass


class NoSessionError(SessionError):
    pass


class NotAuthenticatedError(SessionError):
    pass


class MissingProxyGrantError(SessionError):
    pass


class ApplicationError(CASError):
    pass

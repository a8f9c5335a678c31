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

import time
from collections import namedtuple

from ._utils import generate_nonce


__all__ = ['AuthInfo', 'AuthInfoService']


AuthInfo = namedtuple('AuthInfo', 'identity username app_id issued_at nonce')


# Marks a session as CAS-authenticated. What identity is, and whether it
# survives the session serializer, is up to the application's verify
# callable.
class AuthInfoService(object):

    def __init__(self, app_id, global_ttl=None):
        self._app_id = app_id
        self._global_ttl = global_ttl

    def issue(self, identity, username):
        auth_info = AuthInfo(identity, username, self._app_id,
                             int(time.time()), generate_nonce(22))
        self._register(auth_info)
        return auth_info

    def is_valid(self, auth_info):
        try:
            auth_info = AuthInfo(*auth_info)
        except TypeError:
            # Left over from some other scheme
            return False
        return auth_info.app_id == self._app_id and \
            (self._global_ttl is None or
             auth_info.issued_at + self._global_ttl >= time.time()) and \
            self._is_allowed(auth_info)

    def _register(self, auth_info):
        # Hook for server-side whitelists.
        pass

    def _is_allowed(self, auth_info):
        # Hook for revocation checks.
        return True
